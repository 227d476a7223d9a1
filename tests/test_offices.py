"""Tests for the office directory."""

from __future__ import annotations

import json

import pytest

from dental_pms.adapters.carestack import CareStackAdapter
from dental_pms.errors import ConfigurationError
from dental_pms.offices import DEMO_OFFICE_ID, Office, OfficeDirectory, demo_office, load_offices
from dental_pms.services.mock_pms import MockBehavior


class TestOffice:
    def test_camel_case_fields(self):
        office = Office.model_validate(
            {"id": "o1", "clinicId": "c1", "pmsType": "dentrix", "pmsCredentials": {"accountId": "a"}}
        )
        assert (office.clinic_id, office.pms_type) == ("c1", "dentrix")

    def test_mock_flag_folded_into_credentials(self):
        office = Office(id="o1", pms_credentials={"vendorKey": "k"}, use_mock_mode=False)
        assert office.credentials() == {"vendorKey": "k", "useMockMode": False}

    def test_unset_mock_flag_left_out(self):
        assert "useMockMode" not in Office(id="o1").credentials()


class TestLoading:
    def test_load_offices_from_file(self, tmp_path):
        path = tmp_path / "offices.json"
        path.write_text(json.dumps([{"id": "o1", "pmsType": "carestack"}, {"id": "o2"}]))
        assert [o.id for o in load_offices(path)] == ["o1", "o2"]

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_offices(tmp_path / "nope.json")

    def test_non_list_is_configuration_error(self, tmp_path):
        path = tmp_path / "offices.json"
        path.write_text("{}")
        with pytest.raises(ConfigurationError, match="JSON list"):
            load_offices(path)

    def test_from_config_without_file_serves_demo_office(self):
        directory = OfficeDirectory.from_config()
        assert directory.get(DEMO_OFFICE_ID) == demo_office()
        assert len(directory) == 1


class TestAdapters:
    @pytest.mark.asyncio
    async def test_adapter_built_once_per_office(self):
        directory = OfficeDirectory([demo_office()], behavior=MockBehavior.instant())
        office = directory.get(DEMO_OFFICE_ID)
        first = await directory.adapter_for(office)
        assert isinstance(first, CareStackAdapter)
        assert await directory.adapter_for(office) is first
        assert first.config.tenant_id == DEMO_OFFICE_ID

    @pytest.mark.asyncio
    async def test_replacing_office_drops_adapter(self):
        directory = OfficeDirectory([demo_office()], behavior=MockBehavior.instant())
        first = await directory.adapter_for(directory.get(DEMO_OFFICE_ID))
        directory.add(demo_office())
        assert await directory.adapter_for(directory.get(DEMO_OFFICE_ID)) is not first
