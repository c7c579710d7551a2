from __future__ import annotations

from stock_inbound.models.catalog import DeviceCatalogEntry, canonical_key
from stock_inbound.services.device_resolver import DeviceResolver, build_rules


def _entries(*keys: str) -> list[DeviceCatalogEntry]:
    return [DeviceCatalogEntry(k, k, device_id=i) for i, k in enumerate(keys, start=1)]


def test_canonical_key():
    assert canonical_key(" fmb-140 bt ") == "FMB140BT"
    assert canonical_key(None) == ""


def test_exact_outranks_prefix():
    resolver = DeviceResolver(_entries("FMB140", "FMB140BT"))
    resolution = resolver.explain("fmb140-bt")
    assert resolution.entry.canonical_key == "FMB140BT"
    assert resolution.rule == "exact"
    assert resolution.score == 1000


def test_longest_catalog_prefix_wins():
    resolver = DeviceResolver(_entries("FMB140", "FMB140BT"))
    resolution = resolver.explain("FMB140BTZ9FD")
    assert resolution.entry.canonical_key == "FMB140BT"
    assert resolution.rule == "raw_prefix"
    assert resolution.score == 900 + len("FMB140BT")


def test_catalog_key_starting_with_raw_text():
    resolution = DeviceResolver(_entries("FMC234")).explain("FMC23")
    assert resolution.rule == "key_prefix"
    assert resolution.score == 700 + len("FMC23")


def test_numeric_suffix_padding():
    resolver = DeviceResolver(_entries("FMB014"))
    resolution = resolver.explain("FMB14")
    assert (resolution.rule, resolution.score) == ("pad3", 850)

    resolver = DeviceResolver(_entries("FMB0014"))
    resolution = resolver.explain("FMB14")
    assert (resolution.rule, resolution.score) == ("pad4", 830)


def test_trim3_rule_scores_when_reached():
    rules = [r for r in build_rules() if r.name == "trim3"]
    resolver = DeviceResolver(_entries("FMC920"), rules=rules)
    assert resolver.score("FMC9202", "FMC920") == (840, "trim3")
    assert resolver.score("FMC92", "FMC920") == (0, None)


def test_not_recognized():
    resolver = DeviceResolver(_entries("FMB140"))
    assert resolver.resolve("Nokia") is None
    assert resolver.display_name("") is None


def test_inactive_entries_are_ignored():
    catalog = [DeviceCatalogEntry("FMB001", "FMB001", active=False)]
    assert DeviceResolver(catalog).resolve("FMB001") is None


def test_equal_scores_first_entry_wins():
    catalog = [DeviceCatalogEntry("FMB140", "FMB140 (EU)"), DeviceCatalogEntry("FMB140", "FMB140 (US)")]
    assert DeviceResolver(catalog).display_name("FMB140") == "FMB140 (EU)"


def test_scores_are_configurable():
    catalog = _entries("FMB", "FMB140BT")
    assert DeviceResolver(catalog).display_name("FMB14") == "FMB"
    tuned = DeviceResolver(catalog, build_rules({"key_prefix": 950}))
    assert tuned.display_name("FMB14") == "FMB140BT"


def test_resolution_is_deterministic():
    resolver = DeviceResolver(_entries("FMB140", "FMB920"))
    first = resolver.explain("FMB140BTZ9FD")
    assert resolver.explain("FMB140BTZ9FD") is first
    assert DeviceResolver(_entries("FMB140", "FMB920")).explain("FMB140BTZ9FD") == first


def test_entry_for_display():
    resolver = DeviceResolver(_entries("FMB140", "FMB920"))
    assert resolver.entry_for_display("FMB920").device_id == 2
    assert resolver.entry_for_display("nope") is None
