"""Tests for the forest configuration and the string-keyed parameter store."""

import math

import pytest

from fprerf.models.forest_components.config import ConfigStore, ForestConfig, ForestType
from fprerf.models.forest_components.exceptions import (
    FPRerFError,
    InvalidConfigError,
    MissingConfigError,
)


def test_defaults():
    config = ForestConfig()
    assert config.forest_type == "binnedBaseRerF"
    assert config.num_trees_in_forest == 500
    assert config.max_depth is None
    assert config.min_parent == 1
    assert config.num_cores == 1
    assert config.criterion == "gini"
    assert config.validate() is config


@pytest.mark.parametrize("depth", [math.inf, 0, -3])
def test_unbounded_depth_values_become_none(depth):
    assert ForestConfig(max_depth=depth).max_depth is None


def test_finite_depth_is_kept_as_int():
    assert ForestConfig(max_depth=4.0).max_depth == 4


def test_forest_type_flags():
    assert ForestType.RF_BASE.is_axis_aligned
    assert ForestType.BINNED_BASE.is_axis_aligned
    assert not ForestType.RERF.is_axis_aligned
    assert ForestType.BINNED_BASE_TERN.is_ternary
    assert ForestType.S_RERF.is_structured
    assert ForestType.parse("rerf") is ForestType.RERF
    assert ForestType.parse("rerfPlus") is None


def test_non_standard_forest_type_warns_and_uses_default_variant():
    config = ForestConfig(forest_type="someOtherForest")
    with pytest.warns(UserWarning, match="non-standard forestType someOtherForest"):
        config.validate()
    assert config.variant is ForestType.BINNED_BASE_RERF
    assert not config.is_standard_forest_type


@pytest.mark.parametrize("params, message", [
    ({"num_cores": 0}, "at least one core"),
    ({"min_parent": 0}, "at least one observation"),
    ({"num_trees_in_forest": 0}, "at least one tree"),
    ({"num_tree_bins": 0}, "at least one tree bin"),
    ({"mtry": 0}, "mtry"),
    ({"mtry_mult": 0.0}, "mtryMult"),
    ({"criterion": "mse"}, "criterion"),
    ({"node_size_to_bin": 20}, "set together"),
    ({"node_size_bin": 20}, "set together"),
    ({"node_size_to_bin": 20, "node_size_bin": 50}, "less than or equal"),
])
def test_invalid_parameters(params, message):
    with pytest.raises(InvalidConfigError, match=message):
        ForestConfig(**params).validate()


def test_structured_forest_requires_image_dimensions():
    with pytest.raises(InvalidConfigError, match="imageHeight and imageWidth"):
        ForestConfig(forest_type="S-RerF").validate()
    with pytest.raises(InvalidConfigError, match="imageHeight and imageWidth"):
        ForestConfig(forest_type="S-RerF", image_height=8).validate()


def test_structured_forest_patch_bounds():
    ForestConfig(forest_type="S-RerF", image_height=8, image_width=8,
                 patch_height_max=3, patch_width_max=8).validate()
    with pytest.raises(InvalidConfigError, match="patch height"):
        ForestConfig(forest_type="S-RerF", image_height=8, image_width=8, patch_height_max=9).validate()
    with pytest.raises(InvalidConfigError, match="patch width"):
        ForestConfig(forest_type="S-RerF", image_height=8, image_width=8,
                     patch_width_min=4, patch_width_max=2).validate()


def test_resolve_fills_data_dependent_defaults():
    config = ForestConfig(num_cores=3).resolve(n_features=17)
    assert config.mtry == 4
    assert config.mtry_mult == 1.0
    assert config.num_tree_bins == 3
    assert 1 <= config.seed <= 1_000_000


def test_resolve_keeps_explicit_values():
    config = ForestConfig(mtry=2, mtry_mult=2.5, seed=11, num_tree_bins=5).resolve(n_features=100)
    assert (config.mtry, config.mtry_mult, config.seed, config.num_tree_bins) == (2, 2.5, 11, 5)


def test_resolve_structured_forest():
    config = ForestConfig(forest_type="S-RerF", image_height=4, image_width=5).resolve(20)
    assert config.patch_height_max == 4
    assert config.patch_width_max == 5
    with pytest.raises(InvalidConfigError, match="does not match"):
        ForestConfig(forest_type="S-RerF", image_height=4, image_width=4).resolve(20)


def test_store_set_and_get():
    store = ConfigStore()
    store.set("numTreesInForest", 10)
    store.set("forestType", "rfBase")
    store.set("mtryMult", 2)
    store.set("maxDepth", 6.0)
    assert store.get("numTreesInForest") == 10
    assert store.get("forestType") == "rfBase"
    assert store.get("mtryMult") == 2.0
    assert isinstance(store.get("maxDepth"), int)


def test_store_unbounded_max_depth():
    store = ConfigStore()
    store.set("maxDepth", 5)
    store.set("maxDepth", math.inf)
    assert "maxDepth" not in store
    store.set("maxDepth", 0)
    assert ForestConfig.from_store(store).max_depth is None
    with pytest.raises(InvalidConfigError):
        store.set("maxDepth", "deep")


def test_store_defaults_and_missing_keys():
    store = ConfigStore()
    assert store.get("minParent") == 1
    assert "minParent" in store
    assert "mtry" not in store
    with pytest.raises(MissingConfigError, match="mtry"):
        store.get("mtry")
    with pytest.raises(KeyError):
        store.get("seed")


@pytest.mark.parametrize("key, value", [
    ("numTreesInForest", "ten"),
    ("numTreesInForest", 2.5),
    ("forestType", 3),
    ("mtryMult", "two"),
    ("seed", [1]),
])
def test_store_rejects_wrong_types(key, value):
    store = ConfigStore()
    with pytest.raises(InvalidConfigError):
        store.set(key, value)


def test_store_keeps_unknown_keys_with_warning():
    store = ConfigStore()
    with pytest.warns(UserWarning, match="Unknown parameter"):
        store.set("fooBar", 3)
    assert store.get("fooBar") == 3


def test_store_round_trip_through_config():
    config = ForestConfig(forest_type="rerf", num_trees_in_forest=7, max_depth=3,
                          node_size_to_bin=40, node_size_bin=20, seed=5, bootstrap=False)
    rebuilt = ForestConfig.from_store(config.to_store())
    assert rebuilt == config


def test_print_parameters(capsys):
    store = ConfigStore()
    store.set("numCores", 2)
    store.print_parameters()
    out = capsys.readouterr().out
    assert "numCores: 2" in out
    assert "minParent: 1 (default)" in out


def test_errors_share_a_base_class():
    assert issubclass(InvalidConfigError, FPRerFError)
    assert issubclass(MissingConfigError, FPRerFError)
    assert issubclass(InvalidConfigError, ValueError)
