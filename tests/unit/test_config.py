"""Tests for configuration models and YAML loading."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from src.core.config import BackendConfig, ExportConfig, Settings, WorkspaceConfig


class TestBackendConfig:
    def test_defaults(self) -> None:
        c = BackendConfig()
        assert c.base_url == "http://localhost:3000"
        assert c.timeout_s == 30.0
        assert c.api_token is None
        assert c.paths.bulk == "/api/ats/applications/bulk"
        assert c.paths.reveal_contact == "/api/applications/reveal-contact"

    def test_trailing_slash_stripped(self) -> None:
        c = BackendConfig(base_url="  https://ats.example.com/  ")
        assert c.base_url == "https://ats.example.com"

    def test_empty_base_url_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BackendConfig(base_url="   ")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            BackendConfig(timeout_s=0)


class TestWorkspaceConfig:
    def test_defaults(self) -> None:
        w = WorkspaceConfig()
        assert w.stage_template == "kanban"
        assert w.stages == []
        assert w.new_stage == "new"
        assert w.screening_stage == "phone_screening"
        assert w.privileged is True

    def test_template_normalized(self) -> None:
        assert WorkspaceConfig(stage_template=" Workspace ").stage_template == "workspace"

    def test_unknown_template_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WorkspaceConfig(stage_template="scrum")

    def test_duplicate_stage_ids_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WorkspaceConfig(stages=[{"id": "a", "name": "A"}, {"id": "a", "name": "Again"}])

    def test_stage_roles_follow_workspace_template(self) -> None:
        w = WorkspaceConfig(stage_template="workspace")
        assert w.new_stage == "new_inbox"
        assert w.screening_stage == "phone_screening"

    def test_stage_roles_follow_explicit_stages(self) -> None:
        w = WorkspaceConfig(stages=[{"id": "inbox", "name": "Inbox"}, {"id": "call", "name": "Call"}])
        assert w.new_stage == "inbox"
        assert w.screening_stage is None

    def test_unknown_new_stage_rejected(self) -> None:
        with pytest.raises(ValidationError, match="new_stage"):
            WorkspaceConfig(stage_template="workspace", new_stage="new")

    def test_unknown_screening_stage_rejected(self) -> None:
        with pytest.raises(ValidationError, match="screening_stage"):
            WorkspaceConfig(screening_stage="coffee_chat")

    def test_page_size_bounds(self) -> None:
        with pytest.raises(ValidationError):
            WorkspaceConfig(page_size=0)
        with pytest.raises(ValidationError):
            WorkspaceConfig(page_size=1001)


class TestExportConfig:
    def test_defaults(self) -> None:
        e = ExportConfig()
        assert e.output_dir == "exports"
        assert e.default_format == "csv"

    def test_unknown_format_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExportConfig(default_format="docx")


class TestSettingsFromYaml:
    def test_load_valid(self, tmp_path: Path) -> None:
        cfg = tmp_path / "settings.yaml"
        cfg.write_text(dedent("""\
            backend:
              base_url: "https://ats.example.com/"
              api_token: "secret"
            workspace:
              name: "Platform Hiring"
              stage_template: workspace
              new_stage: new_inbox
              privileged: false
            export:
              output_dir: "out"
              default_format: excel
        """))
        s = Settings.from_yaml(cfg)
        assert s.backend.base_url == "https://ats.example.com"
        assert s.backend.api_token == "secret"
        assert s.workspace.name == "Platform Hiring"
        assert s.workspace.stage_template == "workspace"
        assert s.workspace.privileged is False
        assert s.export.default_format == "excel"

    def test_explicit_stages(self, tmp_path: Path) -> None:
        cfg = tmp_path / "settings.yaml"
        cfg.write_text(dedent("""\
            workspace:
              stages:
                - id: new
                  name: Inbox
                  is_locked: true
                - id: call
                  name: Call
        """))
        s = Settings.from_yaml(cfg)
        assert [st.id for st in s.workspace.stages] == ["new", "call"]
        assert s.workspace.stages[0].is_locked is True

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = tmp_path / "settings.yaml"
        cfg.write_text("")
        s = Settings.from_yaml(cfg)
        assert s.workspace.name == "Main Hiring Workspace"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Settings.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_values_raise(self, tmp_path: Path) -> None:
        cfg = tmp_path / "settings.yaml"
        cfg.write_text("export:\n  default_format: docx\n")
        with pytest.raises(ValidationError):
            Settings.from_yaml(cfg)
