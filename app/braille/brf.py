from __future__ import annotations

from typing import List

BRAILLE_SPACE = "⠀"
MAX_CELLS_PER_LINE = 40
MAX_LINES_PER_PAGE = 25
PAGE_BREAK = "\f\n"


def braille_cells(text: str) -> int:
    """Counts characters in the braille Unicode block (U+2800-U+28FF), blank cell included."""
    return sum(1 for c in text if "⠀" <= c <= "⣿")


def _split_oversized(word: str, max_cells: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    cells = 0
    for char in word:
        is_cell = "⠀" <= char <= "⣿"
        if is_cell and cells == max_cells:
            chunks.append(current)
            current, cells = "", 0
        current += char
        if is_cell:
            cells += 1
    if current:
        chunks.append(current)
    return chunks


def wrap_lines(braille: str, max_cells: int = MAX_CELLS_PER_LINE) -> List[str]:
    """
    Greedy word wrap on the braille blank so no line exceeds max_cells.

    Newlines already in the braille are hard breaks. A run of blank lines
    (paragraph gap) is kept as a single empty line.
    """
    lines: List[str] = []
    for physical in braille.replace("\r\n", "\n").split("\n"):
        wrapped = _wrap_physical_line(physical.strip("\r"), max_cells)
        if wrapped:
            lines.extend(wrapped)
        elif lines and lines[-1] != "":
            lines.append("")

    while lines and lines[-1] == "":
        lines.pop()
    return lines


def _wrap_physical_line(braille: str, max_cells: int) -> List[str]:
    lines: List[str] = []
    current = ""

    for word in braille.split(BRAILLE_SPACE):
        word_cells = braille_cells(word)
        if word_cells > max_cells:
            if current:
                lines.append(current)
            *full, current = _split_oversized(word, max_cells)
            lines.extend(full)
            continue

        # +1 for the blank cell that joins the word to the line
        if braille_cells(current) + word_cells + 1 <= max_cells:
            current += (BRAILLE_SPACE if current else "") + word
        else:
            if current:
                lines.append(current)
            current = word

    if current:
        lines.append(current)
    return lines


def format_to_brf(
    braille: str,
    max_cells: int = MAX_CELLS_PER_LINE,
    max_lines: int = MAX_LINES_PER_PAGE,
) -> str:
    """
    Paginates braille for embossers: at most 40 cells per line and 25 lines
    per page, lines joined by newline and pages by form feed + newline.
    """
    lines = wrap_lines(braille, max_cells)
    pages = [
        "\n".join(lines[i:i + max_lines])
        for i in range(0, len(lines), max_lines)
    ]
    return PAGE_BREAK.join(pages)
