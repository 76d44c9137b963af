import numpy as np
import pytest
import yaml

from common.config import Classification, Config, NormalEstimation, load_config
from exceptions.exceptions import StepPreconditionError
from processing.classify_surfaces import main
from surftools.io import load_organized_cloud, read_pcd_dimensions, write_point_cloud_from_arrays
from surftools.synthetic import planar_grid, step_grid
from validation.validate_config import validate_config, validate_grid_shape
from validation.validation_helpers import errors_only

PCD_HEADER = """# .PCD v0.7 - Point Cloud Data file format
VERSION 0.7
FIELDS x y z
SIZE 4 4 4
TYPE F F F
COUNT 1 1 1
WIDTH 3
HEIGHT 2
VIEWPOINT 0 0 0 1 0 0 0
POINTS 6
DATA ascii
"""


def test_load_config_defaults_and_yaml(tmp_path):
    assert load_config(None) == Config()
    assert load_config(str(tmp_path / "missing.yaml")) == Config()

    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "logging": {"level": "DEBUG"},
        "normal_estimation": {"radius": 5, "skip_distance": 0.1},
        "classification": {"mask_size": 10},
    }))
    cfg = load_config(str(path))

    assert cfg.logging.level == "DEBUG"
    assert cfg.normal_estimation.radius == 5
    assert cfg.normal_estimation.skip_distance == 0.1
    assert cfg.normal_estimation.step == 1
    assert cfg.classification.mask_size == 10
    assert cfg.segmentation == Config().segmentation


def test_default_config_is_valid():
    assert validate_config(Config()) == []
    assert validate_grid_shape((4, 4)) == []
    assert validate_grid_shape((0, 4))[0].code == "EMPTY_GRID"


def test_validate_config_reports_each_problem():
    cfg = Config(normal_estimation=NormalEstimation(radius=-1, min_neighbors=1),
                 classification=Classification(consistency=1.5))
    issues = validate_config(cfg)
    paths = {i.path: i.code for i in errors_only(issues)}

    assert paths["normal_estimation.radius"] == "NON_POSITIVE"
    assert paths["normal_estimation.min_neighbors"] == "OUT_OF_RANGE"
    assert paths["classification.consistency"] == "OUT_OF_RANGE"


def test_mask_size_one_is_only_a_warning():
    issues = validate_config(Config(classification=Classification(mask_size=1)))
    assert issues and errors_only(issues) == []


def test_load_npy(tmp_path):
    grid = planar_grid(4, 5)
    path = tmp_path / "frame.npy"
    np.save(path, grid.points)

    loaded = load_organized_cloud(str(path))
    assert loaded.shape == (4, 5)
    assert np.array_equal(loaded.points, grid.points)


def test_load_npy_with_wrong_shape(tmp_path):
    path = tmp_path / "flat.npy"
    np.save(path, np.zeros((20, 3)))
    with pytest.raises(StepPreconditionError) as exc:
        load_organized_cloud(str(path))
    assert exc.value.code == "SHAPE_MISMATCH"


def test_missing_input_file(tmp_path):
    with pytest.raises(StepPreconditionError) as exc:
        load_organized_cloud(str(tmp_path / "nope.pcd"))
    assert exc.value.code == "INPUT_NOT_FOUND"


def test_organized_pcd_header(tmp_path):
    rows = [f"{c * 0.1} {r * 0.1} 1.0" for r in range(2) for c in range(3)]
    path = tmp_path / "organized.pcd"
    path.write_text(PCD_HEADER + "\n".join(rows) + "\n")

    assert read_pcd_dimensions(str(path)) == (3, 2)
    grid = load_organized_cloud(str(path))
    assert grid.shape == (2, 3)
    assert grid.points[1, 2] == pytest.approx([0.2, 0.1, 1.0])


def test_unorganized_pcd_needs_dimensions(tmp_path):
    grid = planar_grid(4, 5)
    path = tmp_path / "flat.pcd"
    write_point_cloud_from_arrays(str(path), grid.flat())

    assert read_pcd_dimensions(str(path)) is None
    with pytest.raises(StepPreconditionError) as exc:
        load_organized_cloud(str(path))
    assert exc.value.code == "MISSING_DIMENSIONS"

    loaded = load_organized_cloud(str(path), width=5, height=4)
    assert loaded.shape == (4, 5)
    with pytest.raises(StepPreconditionError):
        load_organized_cloud(str(path), width=6, height=4)


def test_cli_runs_and_exports(tmp_path, capsys):
    path = tmp_path / "step.npy"
    np.save(path, step_grid(10, 10).points)
    out = tmp_path / "classified.ply"

    assert main([str(path), "--export", str(out), "--color-mode", "cluster"]) == 0
    assert out.exists()
    printed = capsys.readouterr().out
    assert "Number of clusters: 2" in printed
    assert "planar: 2" in printed


def test_cli_reports_missing_input(tmp_path):
    assert main([str(tmp_path / "missing.npy"), "--summary-only"]) == 1
