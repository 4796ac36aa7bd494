"""Tests for hardware-based model selection."""
import itertools

from app.model_selection import capabilities_from_hardware, choose_best_model, fits_model, select_model
from interfaces.hardware.provider import HardwareInfo
from interfaces.model.descriptor import HardwareCapabilities

from fakes import make_model


def _example_catalog():
    return [
        make_model("1", min_ram=4, min_vram=None, size=1),
        make_model("2", min_ram=8, min_vram=4, size=2, target="gpu"),
        make_model("3", min_ram=16, min_vram=12, size=3, target="gpu"),
    ]


def test_example_picks_highest_fitting_vram_model():
    """Model 3 needs too much VRAM; model 2 outranks model 1 on VRAM."""
    caps = HardwareCapabilities(available_ram_gb=16, available_vram_gb=8)
    chosen = choose_best_model(caps, _example_catalog())
    assert chosen is not None
    assert chosen.id == "2"


def test_nothing_fits_returns_none():
    caps = HardwareCapabilities(available_ram_gb=2, available_vram_gb=0)
    assert choose_best_model(caps, _example_catalog()) is None


def test_null_vram_requirement_ignores_vram():
    model = make_model("cpu", min_ram=4, min_vram=None)
    assert fits_model(model, HardwareCapabilities(available_ram_gb=4, available_vram_gb=0))


def test_zero_vram_requirement_fits_without_gpu():
    model = make_model("cpu", min_ram=4, min_vram=0)
    assert fits_model(model, HardwareCapabilities(available_ram_gb=8))


def test_ram_breaks_vram_ties_then_size():
    caps = HardwareCapabilities(available_ram_gb=32, available_vram_gb=8)
    models = [
        make_model("a", min_ram=8, min_vram=4, size=5),
        make_model("b", min_ram=16, min_vram=4, size=1),
        make_model("c", min_ram=16, min_vram=4, size=2),
    ]
    assert choose_best_model(caps, models).id == "c"


def test_full_tie_keeps_first_in_catalog_order():
    caps = HardwareCapabilities(available_ram_gb=32)
    models = [make_model("first", min_ram=8, size=2), make_model("second", min_ram=8, size=2)]
    assert choose_best_model(caps, models).id == "first"
    assert choose_best_model(caps, list(reversed(models))).id == "second"


def test_choice_is_deterministic_and_order_independent_without_ties():
    caps = HardwareCapabilities(available_ram_gb=16, available_vram_gb=8)
    catalog = _example_catalog()
    results = {choose_best_model(caps, list(p)).id for p in itertools.permutations(catalog)}
    assert results == {"2"}
    assert choose_best_model(caps, catalog) == choose_best_model(caps, catalog)


def test_forced_model_wins_regardless_of_hardware():
    caps = HardwareCapabilities(available_ram_gb=1)
    chosen = select_model(caps, _example_catalog(), forced_model_id="3")
    assert chosen.id == "3"


def test_unknown_forced_model_falls_back_to_hardware():
    caps = HardwareCapabilities(available_ram_gb=16, available_vram_gb=8)
    assert select_model(caps, _example_catalog(), forced_model_id="missing").id == "2"


def test_unknown_hardware_counts_as_zero():
    info = HardwareInfo(ram_bytes=0, ram_gb=12.0, is_ram_known=False, vram_gb=6.0, is_vram_known=False)
    caps = capabilities_from_hardware(info)
    assert caps.available_ram_gb == 0.0
    assert caps.available_vram_gb == 0.0
