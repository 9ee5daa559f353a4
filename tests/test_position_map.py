"""
Tests for position mapping
==========================

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import pytest

from refsync.citations.models import Citation, CitationLink, CitationType, Reference
from refsync.citations.position_map import (
    DELETED,
    PositionMap,
    build_alphabetical_map,
    build_appearance_map,
    build_delete_map,
    build_move_map,
    build_year_map,
)
from refsync.errors import InvalidPositionError, InvalidRequestError, NotFoundError


def _refs(*specs):
    """specs: (id, authors, year) tuples in position order."""
    return [
        Reference(id=rid, position=i, authors=tuple(authors), year=year)
        for i, (rid, authors, year) in enumerate(specs, start=1)
    ]


@pytest.mark.unit
def test_year_desc_map():
    refs = _refs(("a", ["A"], "2010"), ("b", ["B"], "2023"), ("c", ["C"], "2015"))
    pm = build_year_map(refs, "desc")
    assert pm.mapping == {1: 3, 2: 1, 3: 2}
    assert pm.is_total()


@pytest.mark.unit
def test_year_asc_map_puts_missing_years_last():
    refs = _refs(("a", ["A"], None), ("b", ["B"], "2023"), ("c", ["C"], "in press"), ("d", ["D"], "1999a"))
    pm = build_year_map(refs, "asc")
    assert pm.mapping == {1: 3, 2: 2, 3: 4, 4: 1}


@pytest.mark.unit
def test_year_desc_also_puts_missing_years_last():
    refs = _refs(("a", ["A"], None), ("b", ["B"], "2001"), ("c", ["C"], "2020"))
    assert build_year_map(refs, "desc").mapping == {1: 3, 2: 2, 3: 1}


@pytest.mark.unit
def test_year_map_rejects_unknown_order():
    with pytest.raises(InvalidRequestError):
        build_year_map(_refs(("a", ["A"], "2000")), "sideways")


@pytest.mark.unit
def test_alphabetical_is_case_insensitive_and_stable():
    refs = _refs(
        ("a", ["smith, J."], None),
        ("b", ["Adams B"], None),
        ("c", [], None),
        ("d", ["Smith, A."], None),
    )
    pm = build_alphabetical_map(refs)
    # adams, smith (a), smith (d), no author
    assert pm.mapping == {1: 2, 2: 1, 3: 4, 4: 3}


@pytest.mark.unit
def test_move_forward_shifts_intermediate_down():
    refs = _refs(("a", [], None), ("b", [], None), ("c", [], None), ("d", [], None))
    pm = build_move_map(refs, "a", 3)
    assert pm.mapping == {1: 3, 2: 1, 3: 2, 4: 4}


@pytest.mark.unit
def test_move_backward_shifts_intermediate_up():
    refs = _refs(("a", [], None), ("b", [], None), ("c", [], None))
    pm = build_move_map(refs, "c", 1)
    assert pm.mapping == {1: 2, 2: 3, 3: 1}


@pytest.mark.unit
def test_move_to_same_position_is_identity():
    refs = _refs(("a", [], None), ("b", [], None))
    assert build_move_map(refs, "b", 2).is_identity()


@pytest.mark.unit
@pytest.mark.parametrize("position", [0, 4, -1])
def test_move_rejects_out_of_range(position):
    refs = _refs(("a", [], None), ("b", [], None), ("c", [], None))
    with pytest.raises(InvalidPositionError):
        build_move_map(refs, "a", position)


@pytest.mark.unit
def test_move_unknown_reference():
    with pytest.raises(NotFoundError):
        build_move_map(_refs(("a", [], None)), "zzz", 1)


@pytest.mark.unit
def test_delete_map_marks_deleted_and_shifts():
    refs = _refs(("a", [], None), ("b", [], None), ("c", [], None))
    pm = build_delete_map(refs, "b")
    assert pm.mapping == {1: 1, 2: DELETED, 3: 2}
    assert pm.deleted_positions == [2]
    assert pm.is_total()
    assert pm.as_number_dict() == {1: 1, 2: None, 3: 2}


@pytest.mark.unit
def test_appearance_map_uses_document_order_and_textual_order():
    refs = _refs(("a", [], None), ("b", [], None), ("c", [], None), ("d", [], None))
    citations = [
        Citation(id="late", raw_text="[1]", paragraph_index=2, start_offset=0),
        Citation(id="early", raw_text="[3, 2]", paragraph_index=0, start_offset=5),
        Citation(id="ay", raw_text="(4)", citation_type=CitationType.AUTHOR_YEAR, paragraph_index=0, start_offset=0),
    ]
    pm = build_appearance_map(refs, citations)
    # c, b, a cited in that order; d only in a non-numeric citation
    assert pm.mapping == {3: 1, 2: 2, 1: 3, 4: 4}


@pytest.mark.unit
def test_appearance_map_adds_linked_references_after_text_numbers():
    refs = _refs(("a", [], None), ("b", [], None), ("c", [], None))
    citations = [Citation(id="x", raw_text="[2]", paragraph_index=0, start_offset=0)]
    links = [CitationLink(citation_id="x", reference_id="c"), CitationLink(citation_id="x", reference_id="b")]
    pm = build_appearance_map(refs, citations, links)
    assert pm.mapping == {2: 1, 3: 2, 1: 3}


@pytest.mark.unit
def test_appearance_map_without_citations_is_identity():
    refs = _refs(("a", [], None), ("b", [], None))
    assert build_appearance_map(refs, []).is_identity()


@pytest.mark.unit
def test_is_total_detects_collisions():
    assert not PositionMap({1: 1, 2: 1}).is_total()
    assert not PositionMap({1: DELETED, 2: DELETED}).is_total()
    assert PositionMap.identity(3).is_total()
