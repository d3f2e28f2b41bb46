from __future__ import annotations

import fleet_import.cli.__main__ as cli

"""Exit code contract: 0 all imported, 2 partial failure, 1 fatal."""


def test_exit_code_values():
    assert (cli.EXIT_SUCCESS_ALL, cli.EXIT_PARTIAL_FAILURE, cli.EXIT_FATAL) == (0, 2, 1)


def test_invalid_config_is_fatal(temp_workdir):
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text("source_directory: ./data\nsheet_mappings:\n  X:\n    entity: trailer\n", encoding="utf-8")
    assert cli.main(["--config", str(cfg)]) == cli.EXIT_FATAL
