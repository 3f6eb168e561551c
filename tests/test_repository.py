"""
Tests for the metadata repository.

Verifies:
- Campaign CRUD, ordering and owner scoping
- File record creation, listing and bulk deletion
- Audit entries written alongside each change
- Database failures surface as StoreUnavailableError
"""

import pytest
from sqlalchemy.exc import OperationalError

from campaign_workspace.db import AuditLogModel, CampaignModel
from campaign_workspace.errors import NotFoundError, StoreUnavailableError, ValidationError


def add_record(repository, campaign_id, key, owner="user-1", name="flyer.pdf"):
    return repository.create_file_record(
        owner=owner,
        campaign_id=campaign_id,
        file_name=name,
        content_type="application/pdf",
        storage_key=key,
    )


class TestCampaigns:
    def test_create_campaign(self, repository):
        campaign = repository.create_campaign("user-1", "  Spring Launch  ")

        assert campaign.id
        assert campaign.name == "Spring Launch"
        assert campaign.owner == "user-1"
        assert campaign.created_at is not None

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name_is_rejected(self, repository, db_session, name):
        with pytest.raises(ValidationError):
            repository.create_campaign("user-1", name)
        assert db_session.query(CampaignModel).count() == 0

    def test_duplicate_names_are_allowed(self, repository):
        a = repository.create_campaign("user-1", "Launch")
        b = repository.create_campaign("user-1", "Launch")
        assert a.id != b.id

    def test_list_is_scoped_and_sorted_by_name(self, repository):
        repository.create_campaign("user-1", "Summer")
        repository.create_campaign("user-1", "Autumn")
        repository.create_campaign("user-2", "Winter")

        names = [c.name for c in repository.list_campaigns("user-1")]

        assert names == ["Autumn", "Summer"]

    def test_rename(self, repository):
        campaign = repository.create_campaign("user-1", "Draft")

        renamed = repository.rename_campaign(campaign.id, "Final", "user-1")

        assert renamed.name == "Final"
        assert renamed.updated_at is not None

    def test_rename_requires_ownership(self, repository):
        campaign = repository.create_campaign("user-1", "Draft")

        with pytest.raises(NotFoundError):
            repository.rename_campaign(campaign.id, "Hijacked", "user-2")
        assert repository.get_campaign(campaign.id).name == "Draft"

    def test_rename_to_blank(self, repository):
        campaign = repository.create_campaign("user-1", "Draft")
        with pytest.raises(ValidationError):
            repository.rename_campaign(campaign.id, " ", "user-1")

    def test_delete_missing_campaign(self, repository):
        with pytest.raises(NotFoundError):
            repository.delete_campaign("does-not-exist")


class TestFileRecords:
    def test_list_newest_first(self, repository):
        campaign = repository.create_campaign("user-1", "Launch")
        first = add_record(repository, campaign.id, "user-1/1.pdf")
        second = add_record(repository, campaign.id, "user-1/2.pdf")

        ids = [r.id for r in repository.list_file_records(campaign.id)]

        assert ids == [second.id, first.id]

    def test_get_by_key(self, repository):
        campaign = repository.create_campaign("user-1", "Launch")
        record = add_record(repository, campaign.id, "user-1/1.pdf")

        assert repository.get_file_record_by_key("user-1/1.pdf").id == record.id
        assert repository.get_file_record_by_key("user-1/2.pdf") is None

    def test_delete_file_records(self, repository):
        campaign = repository.create_campaign("user-1", "Launch")
        other = repository.create_campaign("user-1", "Other")
        add_record(repository, campaign.id, "user-1/1.pdf")
        add_record(repository, campaign.id, "user-1/2.pdf")
        add_record(repository, other.id, "user-1/3.pdf")

        assert repository.delete_file_records(campaign.id) == 2
        assert repository.list_file_records(campaign.id) == []
        assert len(repository.list_file_records(other.id)) == 1

    def test_delete_file_records_with_none_is_success(self, repository):
        campaign = repository.create_campaign("user-1", "Empty")
        assert repository.delete_file_records(campaign.id) == 0
        assert repository.delete_file_records(campaign.id) == 0


class TestAudit:
    def test_changes_are_audited(self, repository, db_session):
        campaign = repository.create_campaign("user-1", "Draft")
        repository.rename_campaign(campaign.id, "Final", "user-1")
        add_record(repository, campaign.id, "user-1/1.pdf")

        entries = repository.campaign_history(campaign.id)

        assert [(e.action, e.entity_kind) for e in entries] == [
            ("created", "FileRecord"),
            ("updated", "Campaign"),
            ("created", "Campaign"),
        ]
        update = entries[1]
        assert update.before["name"] == "Draft"
        assert update.after["name"] == "Final"
        assert update.actor_id == "user-1"

    def test_record_generation(self, repository, db_session):
        repository.record_generation(
            owner="user-1",
            source_key="user-1/1.pdf",
            destination_key="user-1/1.pdf",
            public_url="http://testserver/storage/v1/object/public/campaign-outputs/user-1/1.pdf",
            campaign_id="c-1",
        )

        entry = db_session.query(AuditLogModel).one()
        assert entry.action == "generated"
        assert entry.entity_kind == "OutputArtifact"
        assert entry.after["source_key"] == "user-1/1.pdf"


class TestFailures:
    def test_database_failure_is_store_unavailable(self, repository, db_session, monkeypatch):
        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", broken_commit)

        with pytest.raises(StoreUnavailableError) as exc_info:
            repository.create_campaign("user-1", "Launch")

        assert exc_info.value.step == "create_campaign"
        assert exc_info.value.retryable is True

    def test_failed_write_is_rolled_back(self, repository, db_session, monkeypatch):
        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", broken_commit)
        with pytest.raises(StoreUnavailableError):
            repository.create_campaign("user-1", "Launch")
        monkeypatch.undo()

        assert repository.list_campaigns("user-1") == []
        assert db_session.query(AuditLogModel).count() == 0
