import numpy as np
import pytest

from face_attendance.errors import (
    DuplicateIdentity,
    IdentityNotFound,
    InfrastructureError,
    InvalidDescriptor,
    InvalidEnrollment,
)
from face_attendance.models import Base
from face_attendance.registry import IdentityRegistry


def test_empty_registry_lists_nothing(registry):
    assert registry.list_enrolled() == []


def test_enroll_stores_descriptor_exactly(registry):
    descriptor = [0.1, 1 / 3, -2.718281828459045]

    identity = registry.enroll("Ada Lovelace", "ada@example.com", descriptor)

    assert identity.display_name == "Ada Lovelace"
    assert identity.uniqueness_key == "ada@example.com"
    [enrolled] = registry.list_enrolled()
    assert enrolled.identity_id == identity.identity_id
    assert enrolled.descriptors[0].tolist() == descriptor


def test_listed_descriptors_are_read_only(registry):
    registry.enroll("Ada", "ada@example.com", [1, 0, 0])

    [enrolled] = registry.list_enrolled()

    with pytest.raises(ValueError):
        enrolled.descriptors[0][0] = 5.0


def test_duplicate_key_is_rejected(registry):
    registry.enroll("Ada", "ada@example.com", [1, 0, 0])

    with pytest.raises(DuplicateIdentity) as exc:
        registry.enroll("Someone Else", "ada@example.com", [0, 1, 0])

    assert exc.value.uniqueness_key == "ada@example.com"
    assert len(registry.list_enrolled()) == 1


def test_reenroll_appends_descriptor(registry):
    first = registry.enroll("Ada", "ada@example.com", [1, 0, 0])

    again = registry.enroll("Ada", "ada@example.com", [0.9, 0.1, 0], reenroll=True)

    assert again.identity_id == first.identity_id
    [enrolled] = registry.list_enrolled()
    assert [d.tolist() for d in enrolled.descriptors] == [[1, 0, 0], [0.9, 0.1, 0]]


def test_single_descriptor_mode_requires_explicit_update(session_factory):
    registry = IdentityRegistry(session_factory, descriptor_length=3, multi_descriptor=False)
    identity = registry.enroll("Ada", "ada@example.com", [1, 0, 0])

    with pytest.raises(DuplicateIdentity):
        registry.enroll("Ada", "ada@example.com", [0, 1, 0], reenroll=True)

    updated = registry.update_descriptor(identity.identity_id, [0, 1, 0])

    assert [d.tolist() for d in updated.descriptors] == [[0, 1, 0]]
    [enrolled] = registry.list_enrolled()
    assert len(enrolled.descriptors) == 1


@pytest.mark.parametrize("descriptor", [[1, 0], [1, 0, 0, 0], [1, float("nan"), 0], [float("-inf"), 0, 0]])
def test_invalid_descriptor_is_not_stored(registry, descriptor):
    with pytest.raises(InvalidDescriptor):
        registry.enroll("Ada", "ada@example.com", descriptor)

    assert registry.list_enrolled() == []


@pytest.mark.parametrize("name,key", [("", "ada@example.com"), ("Ada", "   "), (None, "ada@example.com")])
def test_blank_name_or_key_is_rejected(registry, name, key):
    with pytest.raises(InvalidEnrollment):
        registry.enroll(name, key, [1, 0, 0])


def test_removed_identity_is_not_eligible(registry):
    identity = registry.enroll("Ada", "ada@example.com", [1, 0, 0])
    registry.enroll("Bob", "bob@example.com", [0, 1, 0])

    registry.remove(identity.identity_id)

    assert [e.display_name for e in registry.list_enrolled()] == ["Bob"]
    with pytest.raises(IdentityNotFound):
        registry.get(identity.identity_id)
    assert registry.get(identity.identity_id, include_removed=True).display_name == "Ada"
    with pytest.raises(DuplicateIdentity):
        registry.enroll("Ada", "ada@example.com", [1, 0, 0], reenroll=True)


def test_unknown_identity(registry):
    with pytest.raises(IdentityNotFound):
        registry.get(999)
    with pytest.raises(IdentityNotFound):
        registry.update_descriptor(999, [1, 0, 0])
    with pytest.raises(IdentityNotFound):
        registry.remove(999)


def test_descriptors_of_another_dimension_are_skipped(session_factory, registry):
    registry.enroll("Ada", "ada@example.com", [1, 0, 0])

    wider = IdentityRegistry(session_factory, descriptor_length=4)

    assert wider.list_enrolled() == []


def test_storage_failure_is_infrastructure_error(engine, registry):
    Base.metadata.drop_all(bind=engine)

    with pytest.raises(InfrastructureError) as exc:
        registry.list_enrolled()
    assert exc.value.operation == "list_enrolled"

    with pytest.raises(InfrastructureError):
        registry.enroll("Ada", "ada@example.com", np.array([1.0, 0.0, 0.0]))
