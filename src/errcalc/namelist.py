"""Fortran namelist I/O モジュール

`&nml ... /` 形式の namelist テキストの読み込みと書き出しを担当する。
対応するのはスカラーの整数・実数・文字列・論理値のみ。
代入文の区切りにはカンマのほか空白も使える。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def _strip_comments(text: str) -> str:
    """`!` 以降のコメントを除去する（引用符内の `!` は残す）"""
    lines = []
    for line in text.splitlines():
        quote: str | None = None
        for i, ch in enumerate(line):
            if quote is not None:
                if ch == quote:
                    quote = None
            elif ch in ("'", '"'):
                quote = ch
            elif ch == "!":
                line = line[:i]
                break
        lines.append(line)
    return "\n".join(lines)


def _tokenize(body: str) -> list[str]:
    """空白またはカンマで区切ってトークンに分割する（`=` は単独のトークン）"""
    tokens: list[str] = []
    current: list[str] = []
    quote: str | None = None

    def flush() -> None:
        if current:
            tokens.append("".join(current))
            current.clear()

    for ch in body:
        if quote is not None:
            current.append(ch)
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
            current.append(ch)
        elif ch == "," or ch.isspace():
            flush()
        elif ch == "=":
            flush()
            tokens.append("=")
        else:
            current.append(ch)
    flush()
    return tokens


def _iter_assignments(body: str, group: str) -> Iterator[tuple[str, str]]:
    """`name = value` の組を順に返す

    値の後に `=` を伴わないトークンが続く場合はエラーにする。
    """
    tokens = _tokenize(body)
    i = 0
    while i < len(tokens):
        name = tokens[i]
        rest = tokens[i + 1 : i + 3]
        if name == "=" or len(rest) < 2 or rest[0] != "=" or rest[1] == "=":
            shown = " ".join(tokens[i : i + 3])
            raise ValueError(f"namelist &{group} の代入文が不正です: {shown!r}")
        yield name, rest[1]
        i += 3


def fortran_float(text: str) -> float:
    """Fortran の実数リテラル（`1.0d-2` など）を float に変換する

    Raises
    ------
    ValueError
        実数として解釈できない場合
    """
    cleaned = text.strip().replace("d", "e").replace("D", "e")
    try:
        return float(cleaned)
    except ValueError:
        raise ValueError(f"実数として解釈できません: {text!r}") from None


def fortran_int(text: str) -> int:
    """Fortran の整数リテラルを int に変換する"""
    try:
        return int(text.strip())
    except ValueError:
        raise ValueError(f"整数として解釈できません: {text!r}") from None


def fortran_str(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    raise ValueError(f"文字列として解釈できません: {text!r}")


def fortran_bool(text: str) -> bool:
    value = text.strip().lower().lstrip(".")
    if value.startswith("t"):
        return True
    if value.startswith("f"):
        return False
    raise ValueError(f"論理値として解釈できません: {text!r}")


_CONVERTERS: dict[type, Callable[[str], Any]] = {
    int: fortran_int,
    float: fortran_float,
    str: fortran_str,
    bool: fortran_bool,
}


def parse_namelist(
    text: str,
    group: str = "nml",
    types: dict[str, type] | None = None,
) -> dict[str, Any]:
    """namelist テキストから指定グループを読み込む。

    Args:
        text: namelist を含むテキスト。
        group: 読み込むグループ名（大文字小文字は区別しない）。
        types: 変数名から型 (int / float / str / bool) への対応。
            指定した場合、未知の変数名はエラーになり、値は型変換される。
            None の場合は値を文字列のまま返す。

    Returns:
        変数名（小文字）から値への辞書。

    Raises
    ------
    ValueError
        グループが見つからない (End of file)、グループが `/` で閉じられていない
        (End of record)、または代入文・値が不正な場合
    """
    text = _strip_comments(text)
    start = re.search(rf"&{re.escape(group)}\b", text, flags=re.IGNORECASE)
    if start is None:
        raise ValueError(f"namelist グループ &{group} が見つかりません (End of file)")

    rest = text[start.end() :]
    end = _find_terminator(rest)
    if end is None:
        raise ValueError(f"namelist グループ &{group} が閉じられていません (End of record)")
    body = rest[:end]

    values: dict[str, Any] = {}
    for name, raw in _iter_assignments(body, group):
        if not _NAME_RE.match(name):
            raise ValueError(f"namelist &{group} の変数名が不正です: {name!r}")
        name = name.lower()
        if types is not None:
            if name not in types:
                raise ValueError(f"namelist &{group} に未知の変数があります: {name}")
            try:
                values[name] = _CONVERTERS[types[name]](raw)
            except ValueError as e:
                raise ValueError(f"namelist &{group} の {name}: {e}") from e
        else:
            values[name] = raw.strip()

    logger.debug("namelist &%s 読み込み完了: %s", group, sorted(values))
    return values


def _find_terminator(text: str) -> int | None:
    """引用符外の最初の `/` の位置を返す"""
    quote: str | None = None
    for i, ch in enumerate(text):
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "/":
            return i
    return None


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return ".true." if value else ".false."
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    return f'"{value}"'


def write_namelist(
    values: dict[str, Any],
    path: str | Path,
    group: str = "nml",
) -> None:
    """namelist 形式のファイルを生成する。

    Args:
        values: 変数名と値の辞書。
        path: 出力先ファイルパス。
        group: namelist グループ名。
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        f.write(f"&{group}\n")
        for name, value in values.items():
            f.write(f"{name} = {_format_value(value)}\n")
        f.write("/\n")
