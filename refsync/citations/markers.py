"""Citation marker tokenizer.

Splits citation text into plain text and numeric marker spans. Bracket markers
("[4]", "[1, 3-5]") and parenthesis markers ("(4)", "(2–4)") are found in a
single left-to-right pass, so text produced by a rewrite is never scanned
twice.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Union

from refsync.citations.numbering import RANGE_DASHES, parse_number_list


_NUMBER_LIST = rf"\d+(?:\s*[{RANGE_DASHES},]\s*\d+)*"
MARKER_RE = re.compile(rf"\[({_NUMBER_LIST})\]|\(({_NUMBER_LIST})\)")


@dataclass(frozen=True)
class PlainText:
    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class MarkerSpan:
    """A numeric marker; `body` is the number list between the delimiters."""

    body: str

    open: str = ""
    close: str = ""

    @property
    def numbers(self) -> List[int]:
        return parse_number_list(self.body)

    def wrap(self, inner: str) -> str:
        return f"{self.open}{inner}{self.close}"

    def render(self) -> str:
        return self.wrap(self.body)


@dataclass(frozen=True)
class BracketSpan(MarkerSpan):
    open: str = "["
    close: str = "]"


@dataclass(frozen=True)
class ParenSpan(MarkerSpan):
    open: str = "("
    close: str = ")"


Span = Union[PlainText, BracketSpan, ParenSpan]


def tokenize_markers(text: str) -> List[Span]:
    """Split text into PlainText and marker spans, preserving every character."""
    spans: List[Span] = []
    cursor = 0
    for match in MARKER_RE.finditer(text or ""):
        if match.start() > cursor:
            spans.append(PlainText(text[cursor:match.start()]))
        if match.group(1) is not None:
            spans.append(BracketSpan(match.group(1)))
        else:
            spans.append(ParenSpan(match.group(2)))
        cursor = match.end()
    if cursor < len(text or ""):
        spans.append(PlainText(text[cursor:]))
    return spans


def render_spans(spans: List[Span]) -> str:
    return "".join(span.render() for span in spans)


def marker_numbers(text: str) -> List[int]:
    """All numbers inside marker spans, in textual order.

    Falls back to reading the whole text as a bare number list ("4, 5") when it
    contains no bracket or parenthesis marker.
    """
    spans = tokenize_markers(text)
    markers = [s for s in spans if isinstance(s, MarkerSpan)]
    if not markers:
        return parse_number_list(text or "")
    numbers: List[int] = []
    for span in markers:
        numbers.extend(span.numbers)
    return numbers
