from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Literal, Optional, Tuple

SegmentType = Literal["text", "math"]


@dataclass
class Segment:
    """
    A run of lesson text classified as literary text or mathematics.

    Attributes:
        type (str): "text" or "math".
        content (str): What gets transcribed (delimiters removed for math).
        original (str): The source slice, delimiters included.
    """
    type: SegmentType
    content: str
    original: str


class SegmentationRules:
    """
    Delimiter patterns, scanned in order. A match that overlaps one accepted
    earlier is discarded, so display math wins over inline math.
    """

    def __init__(
        self,
        delimiter_patterns: Optional[List[str]] = None,
        math_line_patterns: Optional[List[str]] = None,
    ):
        if delimiter_patterns is None:
            delimiter_patterns = [
                r"\$\$([^$]+)\$\$",      # $$ ... $$ display
                r"\\\[([^\]]+)\\\]",     # \[ ... \] display
                r"\\\(([^)]+)\\\)",      # \( ... \) inline
                r"\$([^$]+)\$",          # $ ... $ inline
            ]
        if math_line_patterns is None:
            math_line_patterns = [
                r"^[a-zA-Z](_\d+)?\s*=\s*",
                r"\^[\d(\{]",
                r"[±÷×√∞≠≤≥∑∏∫]",
                r"\[.*\].*/",
                r"\b(sin|cos|tan|log|ln|sqrt|lim)\s*\(",
                r"=\s*\[",
            ]
        self.delimiter_patterns = [re.compile(p) for p in delimiter_patterns]
        self.math_line_patterns = [re.compile(p) for p in math_line_patterns]


DEFAULT_RULES = SegmentationRules()


def is_math_line(line: str, rules: SegmentationRules = DEFAULT_RULES) -> bool:
    """Flags undelimited lines that look like equations (x = ..., x^2, sin(...), ...)."""
    stripped = line.strip()
    return any(pattern.search(stripped) for pattern in rules.math_line_patterns)


def find_math_spans(lesson: str, rules: SegmentationRules = DEFAULT_RULES) -> List[Tuple[int, int, str, str]]:
    """Returns non-overlapping (start, end, content, original) spans sorted by start."""
    spans: List[Tuple[int, int, str, str]] = []
    for pattern in rules.delimiter_patterns:
        pos = 0
        while True:
            match = pattern.search(lesson, pos)
            if match is None:
                break
            start, end = match.span()
            if any(start < s_end and end > s_start for s_start, s_end, _, _ in spans):
                # Retry just past the rejected opening delimiter so it cannot swallow the next one
                pos = start + 1
                continue
            spans.append((start, end, match.group(1).strip(), match.group(0)))
            pos = max(end, start + 1)
    spans.sort(key=lambda span: span[0])
    return spans


def segment_lesson(lesson: str, rules: SegmentationRules = DEFAULT_RULES) -> List[Segment]:
    """
    Splits a lesson into ordered text and math segments.

    Delimited math is found first; the text between matches is then re-scanned
    line by line so that bare equations become math segments too.
    """
    if not lesson or not lesson.strip():
        return []

    segments: List[Segment] = []
    cursor = 0
    for start, end, content, original in find_math_spans(lesson, rules):
        if start > cursor:
            _append_text(segments, lesson[cursor:start])
        segments.append(Segment(type="math", content=content, original=original))
        cursor = end
    if cursor < len(lesson):
        _append_text(segments, lesson[cursor:])

    result: List[Segment] = []
    for segment in segments:
        if segment.type == "math":
            result.append(segment)
            continue
        result.extend(_split_bare_math(segment.content, rules))
    return result


def _append_text(segments: List[Segment], raw: str) -> None:
    text = raw.strip()
    if text:
        segments.append(Segment(type="text", content=text, original=text))


def _split_bare_math(text: str, rules: SegmentationRules) -> List[Segment]:
    out: List[Segment] = []
    buffer: List[str] = []

    def flush():
        _append_text(out, "\n".join(buffer))
        buffer.clear()

    for line in text.split("\n"):
        if line.strip() and is_math_line(line, rules):
            flush()
            stripped = line.strip()
            out.append(Segment(type="math", content=stripped, original=stripped))
        else:
            buffer.append(line)
    flush()
    return out


# --- LaTeX cleanup for Nemeth ---

_FRAC = re.compile(r"\\frac\s*\{([^{}]*)\}\s*\{([^{}]*)\}")
_SQRT = re.compile(r"\\sqrt\s*\{([^{}]*)\}")
_DEGREES = re.compile(r"\^\s*\{?\s*\\circ\s*\}?|°")

_COMMANDS = {
    "times": "*",
    "cdot": "*",
    "div": "/",
    "frac": "",
    "sqrt": "sqrt",
    "sin": "sin",
    "cos": "cos",
    "tan": "tan",
    "theta": "theta",
    "alpha": "alpha",
    "beta": "beta",
    "gamma": "gamma",
    "delta": "delta",
    "omega": "omega",
    "lambda": "lambda",
    "pi": "pi",
    "mu": "mu",
    "tau": "tau",
    "sigma": "sigma",
    "rho": "rho",
    "phi": "phi",
    "left": "",
    "right": "",
}
_COMMAND = re.compile(r"\\(" + "|".join(sorted(_COMMANDS, key=len, reverse=True)) + r")(?![a-zA-Z])")


def clean_latex_for_nemeth(latex: str) -> str:
    """Rewrites LaTeX tokens into the plain ASCII the Nemeth table understands."""
    cleaned = _DEGREES.sub(" degrees", latex)

    # Innermost first, so nested fractions unwind one level per pass
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = _FRAC.sub(r"(\1/\2)", cleaned)
        cleaned = _SQRT.sub(r"sqrt(\1)", cleaned)

    cleaned = _COMMAND.sub(lambda m: _COMMANDS[m.group(1)], cleaned)
    cleaned = re.sub(r"[{}]", "", cleaned)
    cleaned = cleaned.replace("\\", "")
    return cleaned.strip()
