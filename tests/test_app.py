"""Tests for the host application and the command line."""

import pytest

from karaoke_nowplaying import app as app_module
from karaoke_nowplaying.app import NowPlayingApp, build_parser, inspect_page, main
from karaoke_nowplaying.cdp import CdpError
from karaoke_nowplaying.config import AppConfig

from conftest import player_html


class TestInspect:
    """Offline run of the extractors over saved markup."""

    def test_inspect_page(self):
        html = player_html(
            title="Saved Song",
            artist="Evil",
            playing=False,
            progress="1:00 / 3:20",
            image="/c.png",
        )
        result = inspect_page(html, url="https://karaoke.example/songs/9")
        assert result["title"] == "Saved Song"
        assert result["artist"] == "Evil"
        assert result["playback"] == "paused"
        assert result["duration"] == 200
        assert result["progress"] == 60
        assert result["progress_source"] == "text"
        assert result["album_art"] == "https://karaoke.example/c.png"
        assert result["song_url"] == "https://karaoke.example/songs/9"

    def test_inspect_empty_page(self):
        result = inspect_page("<html></html>")
        assert result["title"] is None
        assert result["playback"] == "unknown"
        assert result["progress"] is None

    def test_inspect_command(self, tmp_path, capsys):
        path = tmp_path / "page.html"
        path.write_text(player_html(title="From File"))
        assert main(["inspect", str(path)]) == 0
        assert "From File" in capsys.readouterr().out

    def test_inspect_missing_file(self, tmp_path):
        assert main(["inspect", str(tmp_path / "missing.html")]) == 1


class TestParser:
    def test_defaults_to_run(self):
        args = build_parser().parse_args([])
        assert args.command == "run"
        assert args.jsonl is False

    def test_run_flags(self):
        args = build_parser().parse_args(["run", "--jsonl", "--no-media-session", "--cdp-url", "http://h:1"])
        assert args.jsonl is True
        assert args.no_media_session is True
        assert args.cdp_url == "http://h:1"


class TestNowPlayingApp:
    def test_start_fails_without_browser(self, monkeypatch, loop):
        def no_browser(*args, **kwargs):
            raise CdpError("connection refused")

        monkeypatch.setattr(app_module, "find_page_ws_url", no_browser)
        host = NowPlayingApp(AppConfig(), loop)
        assert host.start() is False
        assert not host.is_started
        host.stop()

    def test_status_before_start(self, loop):
        status = NowPlayingApp(AppConfig(), loop).get_status()
        assert status == {"started": False, "connected": False, "channels": []}

    @pytest.mark.parametrize("flag,attr", [("--no-osc", "osc"), ("--no-media-session", "media_session")])
    def test_run_flags_disable_features(self, monkeypatch, flag, attr):
        seen = {}

        async def fake_run(config, jsonl=False):
            seen["config"] = config
            return 0

        monkeypatch.setattr(app_module, "run_app", fake_run)
        monkeypatch.setattr(app_module, "load_config", lambda path=None: AppConfig())
        assert main(["run", flag]) == 0
        assert getattr(seen["config"], attr).enabled is False
