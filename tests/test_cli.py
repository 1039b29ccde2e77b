"""Tests for the argparse command layer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from gtm_cli.__main__ import main
from gtm_cli.auth.credentials import CredentialRecord, CredentialStore
from gtm_cli.auth.service_account import AuthMethod, AuthMethodConfig
from gtm_cli.cli import build_parser
from gtm_cli.config.store import config_store


@pytest.fixture
def service(mocker: Any) -> MagicMock:
    """Mocked Tag Manager service returned by the client factory."""
    mock_service = mocker.MagicMock()
    mocker.patch("gtm_cli.cli.resources.get_client", return_value=mock_service)
    return mock_service


@pytest.fixture
def tags(service: MagicMock) -> MagicMock:
    return service.accounts.return_value.containers.return_value.workspaces.return_value.tags.return_value


class TestParser:
    """Tests for argument parsing."""

    def test_every_resource_command_is_registered(self) -> None:
        parser = build_parser()

        for argv in (
            ["accounts", "list"],
            ["containers", "create", "-a", "1", "--name", "Web", "--usage-context", "web"],
            ["workspaces", "status", "-a", "1", "-c", "2", "-w", "3"],
            ["tags", "revert", "--tag-id", "9"],
            ["triggers", "update", "--trigger-id", "9", "--type", "pageview"],
            ["variables", "delete", "--variable-id", "9", "--force"],
            ["folders", "list"],
            ["templates", "get", "--template-id", "1"],
            ["zones", "list"],
            ["clients", "create", "--name", "GA4 client"],
            ["transformations", "list"],
            ["versions", "publish", "--version-id", "42"],
            ["version-headers", "latest"],
            ["environments", "get", "--environment-id", "5"],
            ["user-permissions", "list", "-a", "1"],
            ["workspaces", "create-version", "-w", "3", "--notes", "n"],
            ["workspaces", "sync", "-w", "3"],
            ["containers", "snippet", "-c", "2"],
            ["built-in-variables", "revert", "--type", "pageUrl"],
            ["gtag-configs", "list"],
            ["folders", "entities", "--folder-id", "4"],
            ["versions", "undelete", "--version-id", "42"],
            ["environments", "update", "--environment-id", "5", "--url", "https://example.com"],
            ["destinations", "link", "--destination-id", "AW-1"],
            ["user-permissions", "update", "--permission-id", "abc", "--account-access", "admin"],
        ):
            args = parser.parse_args(argv)
            assert callable(args.func)

    def test_auth_login_methods_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["auth", "login", "--adc", "--service-account", "k.json"])

    def test_update_rejects_data_and_file_together(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(
                ["tags", "update", "--tag-id", "1", "--data", "{}", "--file", "x.json"]
            )


class TestResourceCommands:
    """Tests for resource operations against a mocked service."""

    def test_list_outputs_json(
        self, tags: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        tags.list.return_value.execute.return_value = {
            "tag": [{"tagId": "1", "name": "GA4"}]
        }

        status = main(["tags", "list", "-a", "1", "-c", "2", "-w", "3", "-o", "json"])

        assert status == 0
        assert json.loads(capsys.readouterr().out) == [{"tagId": "1", "name": "GA4"}]
        tags.list.assert_called_once_with(parent="accounts/1/containers/2/workspaces/3")

    def test_list_follows_page_tokens(self, tags: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        tags.list.return_value.execute.side_effect = [
            {"tag": [{"tagId": "1"}], "nextPageToken": "next"},
            {"tag": [{"tagId": "2"}]},
        ]

        main(["tags", "list", "-a", "1", "-c", "2", "-w", "3", "-o", "json"])

        assert [t["tagId"] for t in json.loads(capsys.readouterr().out)] == ["1", "2"]
        assert tags.list.call_args_list[1].kwargs["pageToken"] == "next"

    def test_list_uses_configured_defaults(
        self, tags: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config_store.update(
            default_account_id="10", default_container_id="20", default_workspace_id="30"
        )
        tags.list.return_value.execute.return_value = {}

        main(["tags", "list", "-o", "json"])

        tags.list.assert_called_once_with(parent="accounts/10/containers/20/workspaces/30")

    def test_list_with_page_adds_pagination_info(
        self, tags: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        tags.list.return_value.execute.return_value = {
            "tag": [{"tagId": str(i)} for i in range(5)]
        }

        main(["tags", "list", "-a", "1", "-c", "2", "-w", "3", "-o", "json", "--page-size", "2"])

        result = json.loads(capsys.readouterr().out)
        assert [t["tagId"] for t in result["data"]] == ["0", "1"]
        assert result["pagination"]["total_pages"] == 3

    def test_missing_ids_exit_with_error(
        self, service: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["tags", "list", "-a", "1"])

        assert exc_info.value.code == 1
        assert "Missing required options: --container-id, --workspace-id" in capsys.readouterr().err

    def test_create_builds_body_from_options(
        self, tags: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        tags.create.return_value.execute.return_value = {"tagId": "77", "name": "GA4"}

        main([
            "tags", "create", "-a", "1", "-c", "2", "-w", "3",
            "--name", "GA4", "--type", "gaawc",
            "--firing-trigger-id", "5, 6",
            "--data", '{"paused": true}',
            "-o", "json",
        ])

        kwargs = tags.create.call_args.kwargs
        assert kwargs["parent"] == "accounts/1/containers/2/workspaces/3"
        assert kwargs["body"] == {
            "paused": True,
            "name": "GA4",
            "type": "gaawc",
            "firingTriggerId": ["5", "6"],
        }
        assert "Tag created: 77" in capsys.readouterr().err

    def test_create_requires_name(self, tags: MagicMock) -> None:
        with pytest.raises(SystemExit):
            main(["tags", "create", "-a", "1", "-c", "2", "-w", "3", "--type", "html"])

        tags.create.assert_not_called()

    def test_create_reads_body_file(self, tags: MagicMock, tmp_path: Path) -> None:
        body = tmp_path / "tag.json"
        body.write_text('{"name": "From file", "type": "html"}')
        tags.create.return_value.execute.return_value = {"tagId": "1"}

        main(["tags", "create", "-a", "1", "-c", "2", "-w", "3", "--file", str(body), "-o", "json"])

        assert tags.create.call_args.kwargs["body"] == {"name": "From file", "type": "html"}

    def test_invalid_json_data_is_reported(
        self, tags: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit):
            main(["tags", "create", "-a", "1", "-c", "2", "-w", "3", "--data", "{bad"])

        assert "Invalid JSON in --data" in capsys.readouterr().err

    def test_update_reuses_current_fingerprint(self, tags: MagicMock) -> None:
        """Without --fingerprint the current resource's fingerprint is sent."""
        tags.get.return_value.execute.return_value = {
            "tagId": "7",
            "name": "Old",
            "type": "html",
            "fingerprint": "fp-current",
        }
        tags.update.return_value.execute.return_value = {"tagId": "7", "name": "New"}

        main(["tags", "update", "-a", "1", "-c", "2", "-w", "3", "--tag-id", "7", "--name", "New", "-o", "json"])

        kwargs = tags.update.call_args.kwargs
        assert kwargs["path"] == "accounts/1/containers/2/workspaces/3/tags/7"
        assert kwargs["fingerprint"] == "fp-current"
        assert kwargs["body"]["name"] == "New"
        assert kwargs["body"]["type"] == "html"

    def test_update_explicit_fingerprint_wins(self, tags: MagicMock) -> None:
        tags.get.return_value.execute.return_value = {"tagId": "7", "fingerprint": "fp-current"}
        tags.update.return_value.execute.return_value = {}

        main([
            "tags", "update", "-a", "1", "-c", "2", "-w", "3", "--tag-id", "7",
            "--name", "New", "--fingerprint", "fp-mine", "-o", "json",
        ])

        assert tags.update.call_args.kwargs["fingerprint"] == "fp-mine"

    def test_delete_requires_force(self, tags: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        status = main(["tags", "delete", "-a", "1", "-c", "2", "-w", "3", "--tag-id", "7"])

        assert status == 1
        tags.delete.assert_not_called()
        assert "--force" in capsys.readouterr().err

    def test_delete_with_force(self, tags: MagicMock) -> None:
        tags.delete.return_value.execute.return_value = None

        status = main(["tags", "delete", "-a", "1", "-c", "2", "-w", "3", "--tag-id", "7", "--force"])

        assert status == 0
        tags.delete.assert_called_once_with(path="accounts/1/containers/2/workspaces/3/tags/7")

    def test_accounts_list_has_no_parent(self, service: MagicMock) -> None:
        accounts = service.accounts.return_value
        accounts.list.return_value.execute.return_value = {"account": []}

        main(["accounts", "list", "-o", "json"])

        accounts.list.assert_called_once_with()

    def test_versions_publish(self, service: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        versions = service.accounts.return_value.containers.return_value.versions.return_value
        versions.publish.return_value.execute.return_value = {
            "containerVersion": {"containerVersionId": "42"}
        }

        main(["versions", "publish", "-a", "1", "-c", "2", "--version-id", "42", "-o", "json"])

        versions.publish.assert_called_once_with(path="accounts/1/containers/2/versions/42")
        assert "Version 42 published" in capsys.readouterr().err

    def test_user_permissions_path(self, service: MagicMock) -> None:
        permissions = service.accounts.return_value.user_permissions.return_value
        permissions.get.return_value.execute.return_value = {}

        main(["user-permissions", "get", "-a", "1", "--permission-id", "abc", "-o", "json"])

        permissions.get.assert_called_once_with(path="accounts/1/user_permissions/abc")


class TestResourceActions:
    """Tests for the single-call operations beyond CRUD."""

    @pytest.fixture
    def workspaces(self, service: MagicMock) -> MagicMock:
        return service.accounts.return_value.containers.return_value.workspaces.return_value

    def test_workspace_create_version(
        self, workspaces: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        workspaces.create_version.return_value.execute.return_value = {
            "containerVersion": {"containerVersionId": "12"}
        }

        status = main([
            "workspaces", "create-version", "-a", "1", "-c", "2", "-w", "3",
            "--name", "Release", "--notes", "Adds GA4", "-o", "json",
        ])

        assert status == 0
        workspaces.create_version.assert_called_once_with(
            path="accounts/1/containers/2/workspaces/3",
            body={"name": "Release", "notes": "Adds GA4"},
        )
        assert "Version created: 12" in capsys.readouterr().err

    def test_workspace_create_version_compiler_error(
        self, workspaces: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        workspaces.create_version.return_value.execute.return_value = {"compilerError": True}

        with pytest.raises(SystemExit):
            main(["workspaces", "create-version", "-a", "1", "-c", "2", "-w", "3"])

        assert "compiler errors" in capsys.readouterr().err

    def test_workspace_sync(
        self, workspaces: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        workspaces.sync.return_value.execute.return_value = {"mergeConflict": []}

        status = main(["workspaces", "sync", "-a", "1", "-c", "2", "-w", "3", "-o", "json"])

        assert status == 0
        workspaces.sync.assert_called_once_with(path="accounts/1/containers/2/workspaces/3")
        assert "Workspace synced successfully" in capsys.readouterr().err

    def test_workspace_preview_calls_quick_preview(self, workspaces: MagicMock) -> None:
        workspaces.quick_preview.return_value.execute.return_value = {}

        main(["workspaces", "preview", "-a", "1", "-c", "2", "-w", "3", "-o", "json"])

        workspaces.quick_preview.assert_called_once_with(
            path="accounts/1/containers/2/workspaces/3"
        )

    def test_enable_built_in_variables(
        self, workspaces: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        built_ins = workspaces.built_in_variables.return_value
        built_ins.create.return_value.execute.return_value = {"builtInVariable": []}

        main([
            "built-in-variables", "enable", "-a", "1", "-c", "2", "-w", "3",
            "--types", "pageUrl, clickId", "-o", "json",
        ])

        built_ins.create.assert_called_once_with(
            parent="accounts/1/containers/2/workspaces/3", type=["pageUrl", "clickId"]
        )
        assert "Enabled 2 built-in variable(s)" in capsys.readouterr().err

    def test_disable_built_in_variables(self, workspaces: MagicMock) -> None:
        built_ins = workspaces.built_in_variables.return_value
        built_ins.delete.return_value.execute.return_value = None

        status = main([
            "built-in-variables", "disable", "-a", "1", "-c", "2", "-w", "3", "--types", "pageUrl",
        ])

        assert status == 0
        built_ins.delete.assert_called_once_with(
            path="accounts/1/containers/2/workspaces/3", type=["pageUrl"]
        )

    def test_gtag_config_create_requires_type(
        self, workspaces: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit):
            main(["gtag-configs", "create", "-a", "1", "-c", "2", "-w", "3"])

        workspaces.gtag_config.return_value.create.assert_not_called()
        assert "Missing required options: --type" in capsys.readouterr().err

    def test_gtag_config_get_path(self, workspaces: MagicMock) -> None:
        gtag = workspaces.gtag_config.return_value
        gtag.get.return_value.execute.return_value = {}

        main([
            "gtag-configs", "get", "-a", "1", "-c", "2", "-w", "3",
            "--gtag-config-id", "8", "-o", "json",
        ])

        gtag.get.assert_called_once_with(path="accounts/1/containers/2/workspaces/3/gtag_config/8")

    def test_destination_link(
        self, service: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        destinations = service.accounts.return_value.containers.return_value.destinations.return_value
        destinations.link.return_value.execute.return_value = {"destinationId": "AW-1"}

        main(["destinations", "link", "-a", "1", "-c", "2", "--destination-id", "AW-1", "-o", "json"])

        destinations.link.assert_called_once_with(
            parent="accounts/1/containers/2", destinationId="AW-1"
        )
        assert "Destination AW-1 linked" in capsys.readouterr().err

    def test_environment_reauthorize_sends_body(self, service: MagicMock) -> None:
        environments = service.accounts.return_value.containers.return_value.environments.return_value
        environments.reauthorize.return_value.execute.return_value = {}

        main(["environments", "reauthorize", "-a", "1", "-c", "2", "--environment-id", "5", "-o", "json"])

        environments.reauthorize.assert_called_once_with(
            path="accounts/1/containers/2/environments/5", body={}
        )

    def test_environment_create_options(self, service: MagicMock) -> None:
        environments = service.accounts.return_value.containers.return_value.environments.return_value
        environments.create.return_value.execute.return_value = {"environmentId": "6"}

        main([
            "environments", "create", "-a", "1", "-c", "2", "--name", "Staging",
            "--url", "https://staging.example.com", "--debug", "true", "-o", "json",
        ])

        assert environments.create.call_args.kwargs["body"] == {
            "name": "Staging",
            "url": "https://staging.example.com",
            "enableDebug": True,
        }

    def test_user_permission_create(self, service: MagicMock) -> None:
        permissions = service.accounts.return_value.user_permissions.return_value
        permissions.create.return_value.execute.return_value = {"path": "accounts/1/user_permissions/9"}

        main([
            "user-permissions", "create", "-a", "1", "--email", "dev@example.com",
            "--account-access", "user",
            "--container-access", '[{"containerId": "2", "permission": "read"}]',
            "-o", "json",
        ])

        permissions.create.assert_called_once_with(
            parent="accounts/1",
            body={
                "emailAddress": "dev@example.com",
                "accountAccess": {"permission": "user"},
                "containerAccess": [{"containerId": "2", "permission": "read"}],
            },
        )

    def test_user_permission_create_requires_email(
        self, service: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit):
            main(["user-permissions", "create", "-a", "1", "--account-access", "user"])

        assert "Missing required options: --email" in capsys.readouterr().err

    def test_version_set_latest(
        self, service: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        versions = service.accounts.return_value.containers.return_value.versions.return_value
        versions.set_latest.return_value.execute.return_value = {}

        main(["versions", "set-latest", "-a", "1", "-c", "2", "--version-id", "42", "-o", "json"])

        versions.set_latest.assert_called_once_with(path="accounts/1/containers/2/versions/42")
        assert "Version 42 set as latest" in capsys.readouterr().err

    def test_container_snippet(self, service: MagicMock) -> None:
        containers = service.accounts.return_value.containers.return_value
        containers.snippet.return_value.execute.return_value = {"snippet": "<script>"}

        main(["containers", "snippet", "-a", "1", "-c", "2", "-o", "json"])

        containers.snippet.assert_called_once_with(path="accounts/1/containers/2")


class TestConfigCommands:
    """Tests for gtm config."""

    def test_set_and_get(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["config", "set", "defaultAccountId", "123"]) == 0
        capsys.readouterr()

        main(["config", "get", "defaultAccountId", "-o", "table"])

        assert capsys.readouterr().out == "123\n"

    def test_get_unset_key(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["config", "get", "defaultWorkspaceId", "-o", "json"])

        assert json.loads(capsys.readouterr().out) == {"defaultWorkspaceId": None}

    def test_invalid_key(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["config", "set", "lastAccountId", "1"])

        assert "Invalid key: lastAccountId" in capsys.readouterr().err

    def test_invalid_output_format(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["config", "set", "outputFormat", "yaml"])

        assert "outputFormat must be one of" in capsys.readouterr().err


class TestAuthCommands:
    """Tests for gtm auth."""

    def test_status_when_logged_out(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["auth", "status", "-o", "json"])

        assert json.loads(capsys.readouterr().out) == {"authenticated": False, "method": "oauth"}

    def test_status_with_oauth_record(
        self,
        credential_store: CredentialStore,
        sample_record: CredentialRecord,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        credential_store.save(sample_record)

        main(["auth", "status", "-o", "json"])

        data = json.loads(capsys.readouterr().out)
        assert data["authenticated"] is True
        assert data["email"] == "user@example.com"
        assert data["method"] == "oauth"
        assert data["needsRefresh"] is False

    def test_status_env_var_takes_precedence(
        self,
        service_account_key: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(service_account_key))

        main(["auth", "status", "-o", "json"])

        data = json.loads(capsys.readouterr().out)
        assert data["method"] == "service-account"
        assert data["source"] == "GOOGLE_APPLICATION_CREDENTIALS"

    def test_login_with_service_account(self, mocker: Any, service_account_key: Path) -> None:
        login = mocker.patch(
            "gtm_cli.cli.auth.service_account_auth.login_with_service_account",
            return_value=AuthMethodConfig(
                method=AuthMethod.SERVICE_ACCOUNT,
                service_account_path=str(service_account_key),
                service_account_email="sa@example.com",
            ),
        )

        assert main(["auth", "login", "--service-account", str(service_account_key)]) == 0
        login.assert_called_once_with(str(service_account_key))

    def test_oauth_login_clears_saved_method(
        self,
        mocker: Any,
        credential_store: CredentialStore,
        sample_record: CredentialRecord,
    ) -> None:
        """A browser login makes OAuth the active method again."""
        from gtm_cli.auth.service_account import service_account_auth

        service_account_auth.store.save(AuthMethodConfig(method=AuthMethod.ADC))
        mocker.patch("gtm_cli.cli.auth.oauth_manager.login", return_value=sample_record)

        assert main(["auth", "login"]) == 0
        assert service_account_auth.load_auth_method() is None

    def test_logout_clears_everything(
        self,
        mocker: Any,
        credential_store: CredentialStore,
        sample_record: CredentialRecord,
    ) -> None:
        from gtm_cli.auth.service_account import service_account_auth

        credential_store.save(sample_record)
        service_account_auth.store.save(AuthMethodConfig(method=AuthMethod.ADC))
        revoke = mocker.patch("gtm_cli.cli.auth.oauth_manager.revoke_token", return_value=True)

        assert main(["auth", "logout"]) == 0

        assert credential_store.load() is None
        assert service_account_auth.load_auth_method() is None
        assert revoke.call_count == 2

    def test_logout_removes_corrupt_credential_file(
        self, config_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config_dir.mkdir(parents=True)
        path = config_dir / "credentials.json"
        path.write_text("{not json")

        assert main(["auth", "logout"]) == 0

        assert not path.exists()

    def test_logout_removes_corrupt_auth_method_file(
        self, config_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config_dir.mkdir(parents=True)
        path = config_dir / "auth-method.json"
        path.write_text('{"method": "service-account"}')

        assert main(["auth", "logout"]) == 0

        assert not path.exists()
        assert "Cleared saved authentication method" in capsys.readouterr().err

    def test_status_with_corrupt_file_points_to_logout(
        self, config_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The suggested recovery actually recovers."""
        config_dir.mkdir(parents=True)
        (config_dir / "credentials.json").write_text("{not json")

        with pytest.raises(SystemExit) as exc_info:
            main(["auth", "status", "-o", "json"])
        assert exc_info.value.code == 1
        assert "logout" in capsys.readouterr().err

        main(["auth", "logout"])
        capsys.readouterr()
        main(["auth", "status", "-o", "json"])

        assert json.loads(capsys.readouterr().out)["authenticated"] is False

    def test_interrupted_login_exits_130(self, mocker: Any) -> None:
        mocker.patch("gtm_cli.cli.auth.oauth_manager.login", side_effect=KeyboardInterrupt)

        assert main(["auth", "login"]) == 130
