from main import build_overrides, main, parse_args


def test_flags_become_config_overrides():
    args = parse_args([
        "--device", "CAM-1", "--device", "CAM-2",
        "--min-interval", "100", "--max-interval", "200",
        "--save-images", "--log-level", "DEBUG",
    ])

    assert args.devices == ["CAM-1", "CAM-2"]
    assert build_overrides(args) == {
        "device": {"min_interval_ms": 100, "max_interval_ms": 200},
        "storage": {"save_images": True},
        "logging": {"level": "DEBUG"},
    }


def test_no_flags_no_overrides():
    assert build_overrides(parse_args([])) == {}


def test_invalid_configuration_exits_with_code_2(tmp_path, capsys):
    assert main(["--min-interval", "500", "--max-interval", "100", "--config", str(tmp_path / "absent.yaml")]) == 2
    assert "max_interval_ms" in capsys.readouterr().err
