# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for TabConfig defaults, validation and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from tabsession.config import TabConfig


class TestDefaults:
    def test_navigation_timings(self):
        cfg = TabConfig()
        assert cfg.navigation_check_interval_ms == 100
        assert cfg.stale_navigation_ms == 10000
        assert cfg.navigation_timeout_ms == 60000

    def test_download_window(self):
        cfg = TabConfig()
        assert cfg.download_grace_ms == 1000
        assert cfg.load_state_timeout_ms == 5000

    def test_seconds_helpers(self):
        cfg = TabConfig(navigation_check_interval_ms=250, default_timeout_ms=3000, stale_navigation_ms=1500)
        assert cfg.check_interval_s == 0.25
        assert cfg.navigation_settle_s == 3.0
        assert cfg.stale_navigation_s == 1.5

    def test_frozen(self):
        cfg = TabConfig()
        with pytest.raises(AttributeError):
            cfg.default_timeout_ms = 1


class TestValidation:
    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="download_grace_ms"):
            TabConfig(download_grace_ms=-1)

    def test_zero_interval_rejected(self):
        with pytest.raises(ValueError, match="navigation_check_interval_ms"):
            TabConfig(navigation_check_interval_ms=0)

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ValueError, match="selector_concurrency"):
            TabConfig(selector_concurrency=0)


class TestFromEnv:
    def test_reads_prefixed_variables(self):
        cfg = TabConfig.from_env({"TABSESSION_DEFAULT_TIMEOUT_MS": "7000", "TABSESSION_SELECTOR_CONCURRENCY": "2"})
        assert cfg.default_timeout_ms == 7000
        assert cfg.selector_concurrency == 2

    def test_output_dir_is_path(self, tmp_path):
        cfg = TabConfig.from_env({"TABSESSION_OUTPUT_DIR": str(tmp_path)})
        assert cfg.output_dir == Path(tmp_path)

    def test_empty_value_ignored(self):
        cfg = TabConfig.from_env({"TABSESSION_DEFAULT_TIMEOUT_MS": ""})
        assert cfg.default_timeout_ms == 5000

    def test_non_integer_rejected(self):
        with pytest.raises(ValueError, match="TABSESSION_STALE_NAVIGATION_MS"):
            TabConfig.from_env({"TABSESSION_STALE_NAVIGATION_MS": "soon"})

    def test_overrides_win(self):
        cfg = TabConfig.from_env({"TABSESSION_DEFAULT_TIMEOUT_MS": "7000"}, default_timeout_ms=9000)
        assert cfg.default_timeout_ms == 9000

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("TABSESSION_DOWNLOAD_GRACE_MS", "1500")
        assert TabConfig.from_env().download_grace_ms == 1500
