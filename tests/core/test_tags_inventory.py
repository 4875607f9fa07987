# tests/core/test_tags_inventory.py

import datetime

import pytest

from metratec_rfid.core.exceptions import ValidationError
from metratec_rfid.core.inventory import Inventory
from metratec_rfid.core.tags import Iso14ADetails, Iso15Details, Tag, TagKind, UhfDetails

EPC = "3034257BF468D480000003EC"
T0 = datetime.datetime(2024, 5, 1, 12, 0, 0)


def uhf_tag(epc=EPC, seconds=0, **kwargs) -> Tag:
    return Tag(epc, kind=TagKind.UHF, first_seen=T0 + datetime.timedelta(seconds=seconds), **kwargs)


class TestTag:

    def test_defaults(self):
        tag = uhf_tag()
        assert tag.seen_count == 1
        assert tag.last_seen == tag.first_seen
        assert isinstance(tag.details, UhfDetails)
        assert tag.epc == EPC
        assert tag.rssi is None

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            Tag("")

    def test_details_must_match_kind(self):
        with pytest.raises(ValidationError):
            Tag("E0040150954F0983", kind=TagKind.ISO15, details=UhfDetails())
        with pytest.raises(ValidationError):
            Tag("E0040150954F0983", kind=TagKind.HF, details=Iso15Details())

    def test_variant_accessors(self):
        iso15 = Tag("E0040150954F0983", kind=TagKind.ISO15, details=Iso15Details(dsfid="00"))
        iso14a = Tag("04A2B3C4D5E6F7", kind=TagKind.ISO14A, details=Iso14ADetails(sak="08", atqa="0044"))
        assert iso15.dsfid == "00"
        assert iso15.epc is None
        assert iso14a.sak == "08"
        assert iso14a.atqa == "0044"
        assert iso14a.dsfid is None

    def test_merge_counts_and_keeps_latest_time(self):
        tag = uhf_tag(seconds=10)
        tag.merge(uhf_tag(seconds=20, antenna=2, details=UhfDetails(rssi=-60)))
        tag.merge(uhf_tag(seconds=5))

        assert tag.seen_count == 3
        assert tag.first_seen == T0 + datetime.timedelta(seconds=10)
        assert tag.last_seen == T0 + datetime.timedelta(seconds=20)
        assert tag.antenna == 2
        assert tag.rssi == -60

    def test_merge_other_id_rejected(self):
        with pytest.raises(ValidationError):
            uhf_tag().merge(uhf_tag(epc="E2003412B802011512503170"))

    def test_copy_is_independent(self):
        tag = uhf_tag(details=UhfDetails(rssi=-50))
        copy = tag.copy()
        copy.details.rssi = -70
        copy.seen_count = 5
        assert tag.rssi == -50
        assert tag.seen_count == 1


class TestInventory:

    @pytest.fixture(autouse=True)
    def setup_inventory(self):
        self.inventory = Inventory()

    @pytest.mark.asyncio
    async def test_new_tag_added(self):
        touched = await self.inventory.update([uhf_tag()])

        assert len(self.inventory) == 1
        assert EPC in self.inventory
        assert touched[0].seen_count == 1

    @pytest.mark.asyncio
    async def test_sightings_accumulate(self):
        for second in range(4):
            touched = await self.inventory.update([uhf_tag(seconds=second)])

        assert touched[0].seen_count == 4
        stored = self.inventory.get(EPC)
        assert stored.seen_count == 4
        assert stored.first_seen == T0
        assert stored.last_seen == T0 + datetime.timedelta(seconds=3)

    @pytest.mark.asyncio
    async def test_touched_records_are_copies(self):
        touched = await self.inventory.update([uhf_tag()])
        touched[0].seen_count = 99
        assert self.inventory.get(EPC).seen_count == 1

    @pytest.mark.asyncio
    async def test_report_counts_are_added(self):
        await self.inventory.update([uhf_tag(seen_count=5)])
        await self.inventory.update([uhf_tag(seen_count=2)])
        assert self.inventory.get(EPC).seen_count == 7

    @pytest.mark.asyncio
    async def test_fetch_clears(self):
        await self.inventory.update([uhf_tag(), uhf_tag(epc="E2003412B802011512503170")])

        tags = await self.inventory.fetch()

        assert len(tags) == 2
        assert len(self.inventory) == 0
        assert self.inventory.get(EPC) is None

    @pytest.mark.asyncio
    async def test_snapshot_keeps_tags(self):
        await self.inventory.update([uhf_tag()])
        assert len(await self.inventory.snapshot()) == 1
        assert len(self.inventory) == 1
        await self.inventory.clear()
        assert len(self.inventory) == 0
