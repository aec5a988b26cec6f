"""Unit tests for the pending-player marker kept in payment notes."""

import uuid

import pytest

from services.payments_service.audit import (
    append_note,
    format_marker,
    has_marker,
    parse_pending_player_ids,
)


@pytest.mark.unit
def test_format_and_parse_keep_order():
    """Ids come back in the order they were written."""
    ids = [uuid.uuid4() for _ in range(3)]
    notes = format_marker(ids)

    assert notes.startswith("Pending Player IDs: ")
    assert parse_pending_player_ids(notes) == [str(i) for i in ids]


@pytest.mark.unit
def test_parse_ignores_surrounding_narrative():
    """The marker is found inside free text written by humans."""
    first, second = uuid.uuid4(), uuid.uuid4()
    notes = (
        "Pago de matrícula procesado con Yappy Comercial. Monto: $160.00.\n"
        f"Pending Player IDs: {first}, {second}\n"
        "Revisado por administración."
    )
    assert parse_pending_player_ids(notes) == [str(first), str(second)]


@pytest.mark.unit
def test_parse_merges_multiple_markers_without_duplicates():
    """Every marker contributes; repeated ids are listed once."""
    a, b = uuid.uuid4(), uuid.uuid4()
    notes = f"{format_marker([a])}\n{format_marker([a, b])}"
    assert parse_pending_player_ids(notes) == [str(a), str(b)]


@pytest.mark.unit
def test_parse_normalizes_case():
    """Upper-case ids written by hand compare equal to stored ids."""
    pid = uuid.uuid4()
    notes = f"Pending Player IDs: {str(pid).upper()}"
    assert parse_pending_player_ids(notes) == [str(pid)]


@pytest.mark.unit
def test_no_marker():
    """Notes without a marker have no linked players."""
    assert parse_pending_player_ids(None) == []
    assert parse_pending_player_ids("Pago manual") == []
    assert has_marker("Pago manual") is False
    assert has_marker(format_marker([uuid.uuid4()])) is True


@pytest.mark.unit
def test_append_note_preserves_prior_content():
    """Appending never overwrites what was already written."""
    assert append_note(None, "first") == "first"
    assert append_note("first", "second") == "first\nsecond"
