from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import make_document, make_event
from visitor_api.models import ActivityLog, Document, DocumentEvent, DocumentVersion
from visitor_api.services import documents as documents_service
from visitor_api.services.documents import (
    DocumentVersionError,
    UploadedFile,
    assign_document_events,
    create_document,
    list_versions,
    set_current_version,
    set_document_active,
    upload_new_version,
)
from visitor_api.services.storage import StorageError, StoredFile


@dataclass
class MemoryStorage:
    objects: dict[str, bytes] = field(default_factory=dict)

    def build_key(self, document_id, original_name: str) -> str:
        return f"documents/{document_id}/{uuid.uuid4()}-{original_name}"

    def upload_bytes(self, key: str, file_obj, content_type: str) -> StoredFile:
        self.objects[key] = bytes(file_obj)
        return StoredFile(key=key, storage_url=f"memory://{key}", size=len(self.objects[key]))

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)


class UndeletableStorage(MemoryStorage):
    def delete(self, key: str) -> None:
        raise StorageError("Failed to delete S3 object: access denied")


def _upload(name: str = "policy.pdf", data: bytes = b"%PDF-1.7 body") -> UploadedFile:
    return UploadedFile(filename=name, content_type="application/pdf", data=data)


def _current_versions(db, document_id) -> list[DocumentVersion]:
    db.expire_all()
    return (
        db.query(DocumentVersion)
        .filter(DocumentVersion.document_id == document_id, DocumentVersion.is_current.is_(True))
        .all()
    )


def test_create_document_stores_first_version_as_current(db) -> None:
    storage = MemoryStorage()
    event = make_event(db)
    db.commit()

    document = create_document(
        db,
        storage,
        name="Visitor NDA",
        upload=_upload(),
        version_label="2025",
        event_ids=[event.id],
    )
    db.commit()

    versions = list_versions(db, document.id)
    assert [(v.version_number, v.is_current, v.version_label) for v in versions] == [(1, True, "2025")]
    assert versions[0].file_path in storage.objects
    assert versions[0].file_size == len(b"%PDF-1.7 body")
    assert db.query(DocumentEvent).filter(DocumentEvent.document_id == document.id).count() == 1
    assert db.query(ActivityLog).filter(ActivityLog.type == "document_uploaded").count() == 1


def test_new_versions_number_monotonically_and_keep_one_current(db) -> None:
    storage = MemoryStorage()
    document = create_document(db, storage, name="Safety", upload=_upload())
    db.commit()

    second = upload_new_version(db, storage, document.id, upload=_upload("safety-v2.pdf"))
    db.commit()
    third = upload_new_version(db, storage, document.id, upload=_upload("safety-v3.pdf"), make_current=False)
    db.commit()

    assert [v.version_number for v in list_versions(db, document.id)] == [1, 2, 3]
    current = _current_versions(db, document.id)
    assert [v.id for v in current] == [second.id]
    assert third.is_current is False


def test_set_current_version_keeps_exactly_one_current(db) -> None:
    document = make_document(db, "Handbook", versions=3)
    db.commit()
    versions = list_versions(db, document.id)

    for target in (versions[0], versions[2], versions[1], versions[1]):
        set_current_version(db, document.id, target.id)
        db.commit()
        current = _current_versions(db, document.id)
        assert [v.id for v in current] == [target.id]


def test_set_current_version_rejects_version_of_other_document(db) -> None:
    first = make_document(db, "First", versions=1)
    second = make_document(db, "Second", versions=2)
    db.commit()
    foreign = list_versions(db, second.id)[0]

    with pytest.raises(DocumentVersionError, match="Version does not belong to this document"):
        set_current_version(db, first.id, foreign.id)
    db.rollback()

    assert len(_current_versions(db, first.id)) == 1
    assert _current_versions(db, second.id)[0].version_number == 2


def test_set_current_version_unknown_document(db) -> None:
    with pytest.raises(DocumentVersionError, match="Document not found"):
        set_current_version(db, uuid.uuid4(), uuid.uuid4())


def test_database_rejects_two_current_versions(db) -> None:
    document = make_document(db, "Guarded", versions=1)
    db.commit()

    db.add(
        DocumentVersion(
            document_id=document.id,
            version_number=2,
            file_path="documents/x/v2.pdf",
            file_name="v2.pdf",
            is_current=True,
        )
    )
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()


def test_assign_document_events_replaces_the_set(db) -> None:
    document = make_document(db, "Agenda")
    keep = make_event(db, name="Keep")
    drop = make_event(db, name="Drop")
    add = make_event(db, name="Add")
    db.commit()

    assign_document_events(db, document.id, [keep.id, drop.id])
    db.commit()
    assign_document_events(db, document.id, [keep.id, add.id])
    db.commit()

    linked = {link.event_id for link in db.query(DocumentEvent).filter(DocumentEvent.document_id == document.id)}
    assert linked == {keep.id, add.id}


def test_assign_document_events_rejects_unknown_events(db) -> None:
    document = make_document(db, "Agenda")
    db.commit()

    with pytest.raises(DocumentVersionError, match="Unknown event ids"):
        assign_document_events(db, document.id, [uuid.uuid4()])
    db.rollback()


def test_create_document_checks_events_before_uploading(db) -> None:
    storage = MemoryStorage()

    with pytest.raises(DocumentVersionError, match="Unknown event ids"):
        create_document(db, storage, name="NDA", upload=_upload(), event_ids=[uuid.uuid4()])
    db.rollback()

    assert storage.objects == {}
    assert db.query(Document).count() == 0


def test_upload_new_version_deletes_file_when_database_work_fails(db, monkeypatch) -> None:
    storage = MemoryStorage()
    document = create_document(db, storage, name="Safety", upload=_upload())
    db.commit()
    first_key = next(iter(storage.objects))

    def refuse(*args, **kwargs):
        raise DocumentVersionError("Version does not belong to this document")

    monkeypatch.setattr(documents_service, "set_current_version", refuse)

    with pytest.raises(DocumentVersionError):
        upload_new_version(db, storage, document.id, upload=_upload("safety-v2.pdf"))
    db.rollback()

    assert list(storage.objects) == [first_key]
    assert [v.version_number for v in list_versions(db, document.id)] == [1]


def test_failed_cleanup_is_logged_and_original_error_raised(db, monkeypatch, caplog) -> None:
    storage = UndeletableStorage()
    document = create_document(db, storage, name="Safety", upload=_upload())
    db.commit()

    def refuse(*args, **kwargs):
        raise DocumentVersionError("Version does not belong to this document")

    monkeypatch.setattr(documents_service, "set_current_version", refuse)

    with caplog.at_level("WARNING", logger="visitor_api.services.documents"):
        with pytest.raises(DocumentVersionError, match="does not belong"):
            upload_new_version(db, storage, document.id, upload=_upload("safety-v2.pdf"))
    db.rollback()

    assert "Failed to delete stored file after upload error" in caplog.text
    assert len(storage.objects) == 2


def test_set_document_active_toggles_flag(db) -> None:
    document = make_document(db, "Old policy")
    db.commit()

    set_document_active(db, document.id, False)
    db.commit()
    db.expire_all()

    assert document.is_active is False
