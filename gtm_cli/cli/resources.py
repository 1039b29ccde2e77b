"""Tag Manager resource commands.

Every resource command maps one CLI operation onto one Tag Manager API call.
Resources are declared in ``RESOURCES``; the operations each one supports are
wired up from that table.
"""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Callable
from functools import partial
from typing import Any, NamedTuple

from gtm_cli.api.client import build_path, execute, get_client
from gtm_cli.cli.common import (
    SCOPE_IDS,
    add_body_options,
    add_id_option,
    add_output_option,
    add_scope_options,
    flag_for,
    load_body,
    require_force,
    resolve_ids,
    resolve_output_format,
    split_csv,
)
from gtm_cli.utils.errors import ValidationError, require_options
from gtm_cli.utils.output import info, output, success
from gtm_cli.utils.pagination import list_all_pages, paginate, with_pagination_info

logger = logging.getLogger(__name__)


def _json_value(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON value: {e.msg}", field="data") from e


def _bool_value(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _permission(value: str) -> dict[str, str]:
    return {"permission": value}


class BodyOption(NamedTuple):
    """A CLI option that sets one field of a create/update body."""

    flag: str
    key: str
    help: str
    convert: Callable[[str], Any] | None = None


class ActionSpec(NamedTuple):
    """A single-call operation on a resource path, e.g. ``workspaces sync``."""

    name: str
    method: str
    help: str
    message: str | None = None
    send_body: bool = False


class ResourceSpec(NamedTuple):
    command: str
    noun: str
    level: str
    accessor: tuple[str, ...]
    id_name: str | None
    id_key: str
    items_field: str
    operations: tuple[str, ...]
    columns: tuple[str, ...] = ()
    body_options: tuple[BodyOption, ...] = ()
    actions: tuple[ActionSpec, ...] = ()
    required: tuple[str, ...] = ("name",)


TYPE_OPTION = BodyOption("--type", "type", "Resource type (e.g. html, pageview, c)")
NOTES_OPTION = BodyOption("--notes", "notes", "Notes")
WORKSPACE_ITEM_OPS = ("list", "get", "create", "update", "delete", "revert")

RESOURCES: tuple[ResourceSpec, ...] = (
    ResourceSpec(
        "accounts", "account", "root", ("accounts",), "account_id", "accountId",
        "account", ("list", "get"), ("accountId", "name"),
    ),
    ResourceSpec(
        "containers", "container", "account", ("accounts", "containers"),
        "container_id", "containerId", "container", ("list", "get", "create", "update", "delete"),
        ("containerId", "name", "publicId", "usageContext"),
        (
            BodyOption("--usage-context", "usageContext", "Comma-separated usage contexts (web, server, ...)", split_csv),
            BodyOption("--domain", "domainName", "Comma-separated target domains", split_csv),
        ),
        (ActionSpec("snippet", "snippet", "Get the installation snippet for a container"),),
    ),
    ResourceSpec(
        "workspaces", "workspace", "container", ("accounts", "containers", "workspaces"),
        "workspace_id", "workspaceId", "workspace",
        ("list", "get", "create", "update", "delete", "status", "create-version"),
        ("workspaceId", "name", "description"),
        (BodyOption("--description", "description", "Workspace description"),),
        (
            ActionSpec(
                "sync", "sync", "Sync a workspace with the latest container version",
                "Workspace synced successfully",
            ),
            ActionSpec("preview", "quick_preview", "Quick preview of workspace changes"),
        ),
    ),
    ResourceSpec(
        "tags", "tag", "workspace", ("accounts", "containers", "workspaces", "tags"),
        "tag_id", "tagId", "tag", WORKSPACE_ITEM_OPS,
        ("tagId", "name", "type", "paused", "fingerprint"),
        (
            TYPE_OPTION,
            BodyOption("--firing-trigger-id", "firingTriggerId", "Comma-separated firing trigger IDs", split_csv),
            BodyOption("--blocking-trigger-id", "blockingTriggerId", "Comma-separated blocking trigger IDs", split_csv),
        ),
    ),
    ResourceSpec(
        "triggers", "trigger", "workspace", ("accounts", "containers", "workspaces", "triggers"),
        "trigger_id", "triggerId", "trigger", WORKSPACE_ITEM_OPS,
        ("triggerId", "name", "type", "fingerprint"), (TYPE_OPTION,),
    ),
    ResourceSpec(
        "variables", "variable", "workspace", ("accounts", "containers", "workspaces", "variables"),
        "variable_id", "variableId", "variable", WORKSPACE_ITEM_OPS,
        ("variableId", "name", "type", "fingerprint"), (TYPE_OPTION,),
    ),
    ResourceSpec(
        "built-in-variables", "built-in variable", "workspace",
        ("accounts", "containers", "workspaces", "built_in_variables"),
        None, "type", "builtInVariable", ("list", "enable", "disable", "revert-types"),
        ("type", "name"),
    ),
    ResourceSpec(
        "folders", "folder", "workspace", ("accounts", "containers", "workspaces", "folders"),
        "folder_id", "folderId", "folder", WORKSPACE_ITEM_OPS,
        ("folderId", "name", "fingerprint"), (NOTES_OPTION,),
        (ActionSpec("entities", "entities", "List the entities in a folder"),),
    ),
    ResourceSpec(
        "templates", "template", "workspace", ("accounts", "containers", "workspaces", "templates"),
        "template_id", "templateId", "template", WORKSPACE_ITEM_OPS,
        ("templateId", "name", "fingerprint"),
    ),
    ResourceSpec(
        "zones", "zone", "workspace", ("accounts", "containers", "workspaces", "zones"),
        "zone_id", "zoneId", "zone", WORKSPACE_ITEM_OPS,
        ("zoneId", "name", "fingerprint"),
    ),
    ResourceSpec(
        "clients", "client", "workspace", ("accounts", "containers", "workspaces", "clients"),
        "client_id", "clientId", "client", WORKSPACE_ITEM_OPS,
        ("clientId", "name", "type", "priority"), (TYPE_OPTION,),
    ),
    ResourceSpec(
        "transformations", "transformation", "workspace",
        ("accounts", "containers", "workspaces", "transformations"),
        "transformation_id", "transformationId", "transformation", WORKSPACE_ITEM_OPS,
        ("transformationId", "name", "type"), (TYPE_OPTION,),
    ),
    ResourceSpec(
        "gtag-configs", "gtag config", "workspace",
        ("accounts", "containers", "workspaces", "gtag_config"),
        "gtag_config_id", "gtagConfigId", "gtagConfig",
        ("list", "get", "create", "update", "delete"),
        ("gtagConfigId", "type", "fingerprint"), (TYPE_OPTION,),
        required=("type",),
    ),
    ResourceSpec(
        "versions", "version", "container", ("accounts", "containers", "versions"),
        "version_id", "containerVersionId", "containerVersion",
        ("get", "live", "update", "publish", "delete"),
        body_options=(NOTES_OPTION,),
        actions=(
            ActionSpec("set-latest", "set_latest", "Set a version as the latest", "Version {id} set as latest"),
            ActionSpec("undelete", "undelete", "Restore a deleted version", "Version {id} restored"),
        ),
    ),
    ResourceSpec(
        "version-headers", "version header", "container",
        ("accounts", "containers", "version_headers"),
        None, "containerVersionId", "containerVersionHeader", ("list", "latest"),
        ("containerVersionId", "name", "numTags", "numTriggers", "numVariables", "deleted"),
    ),
    ResourceSpec(
        "environments", "environment", "container", ("accounts", "containers", "environments"),
        "environment_id", "environmentId", "environment",
        ("list", "get", "create", "update", "delete"),
        ("environmentId", "name", "type", "url"),
        (
            BodyOption("--description", "description", "Environment description"),
            BodyOption("--url", "url", "Environment URL"),
            BodyOption("--debug", "enableDebug", "Enable debug mode (true/false)", _bool_value),
        ),
        (
            ActionSpec(
                "reauthorize", "reauthorize", "Reauthorize an environment",
                "Environment reauthorized successfully", send_body=True,
            ),
        ),
    ),
    ResourceSpec(
        "destinations", "destination", "container", ("accounts", "containers", "destinations"),
        "destination_id", "destinationId", "destination", ("list", "get", "link"),
        ("destinationId", "name", "destinationLinkId"),
    ),
    ResourceSpec(
        "user-permissions", "user permission", "account", ("accounts", "user_permissions"),
        "permission_id", "path", "userPermission", ("list", "get", "create", "update", "delete"),
        ("emailAddress", "accountAccess", "path"),
        (
            BodyOption("--email", "emailAddress", "User email address"),
            BodyOption("--account-access", "accountAccess", "Account access level (noAccess, user, admin)", _permission),
            BodyOption("--container-access", "containerAccess", "Container access as a JSON array", _json_value),
        ),
        required=("emailAddress",),
    ),
)


def _collection(spec: ResourceSpec) -> Any:
    """Walk the service accessors, e.g. ``accounts().containers().tags()``."""
    collection = get_client()
    for name in spec.accessor:
        collection = getattr(collection, name)()
    return collection


def _parent_path(spec: ResourceSpec, args: argparse.Namespace) -> str:
    return build_path(**resolve_ids(args, SCOPE_IDS[spec.level]))


def _item_path(spec: ResourceSpec, args: argparse.Namespace) -> str:
    names = SCOPE_IDS[spec.level]
    if spec.id_name and spec.id_name not in names:
        names += (spec.id_name,)
    return build_path(**resolve_ids(args, names))


def _build_body(spec: ResourceSpec, args: argparse.Namespace) -> dict[str, Any]:
    """Merge ``--data``/``--file`` with field options; options win."""
    body = load_body(args)
    if getattr(args, "name", None):
        body["name"] = args.name
    for option in spec.body_options:
        value = getattr(args, option.key, None)
        if value:
            body[option.key] = option.convert(value) if option.convert else value
    return body


def _flag_for_field(spec: ResourceSpec, key: str) -> str:
    for option in spec.body_options:
        if option.key == key:
            return option.flag
    return flag_for(key)


# =============================================================================
# Operation handlers
# =============================================================================


def cmd_list(spec: ResourceSpec, args: argparse.Namespace) -> int:
    parent = _parent_path(spec, args)
    collection = _collection(spec)

    def fetch_page(page_token: str | None) -> dict[str, Any]:
        kwargs: dict[str, str] = {}
        if parent:
            kwargs["parent"] = parent
        if page_token:
            kwargs["pageToken"] = page_token
        return execute(collection.list(**kwargs))

    items = list_all_pages(fetch_page, items_field=spec.items_field)
    logger.debug("Fetched %d %s item(s)", len(items), spec.noun)

    fmt = resolve_output_format(args)
    columns = list(spec.columns) or None
    if args.page is None and args.page_size is None:
        output(items, fmt, columns=columns)
        return 0

    page = paginate(items, args.page, args.page_size)
    if fmt == "json":
        output(with_pagination_info(page), fmt)
    else:
        output(page.items, fmt, columns=columns)
        info(f"Page {page.page} of {page.total_pages} ({page.total_items} total)")
    return 0


def cmd_get(spec: ResourceSpec, args: argparse.Namespace) -> int:
    response = execute(_collection(spec).get(path=_item_path(spec, args)))
    output(response, resolve_output_format(args))
    return 0


def cmd_create(spec: ResourceSpec, args: argparse.Namespace) -> int:
    parent = _parent_path(spec, args)
    body = _build_body(spec, args)
    missing = [key for key in spec.required if not body.get(key)]
    if missing:
        flags = ", ".join(_flag_for_field(spec, key) for key in missing)
        raise ValidationError(f"Missing required options: {flags}", field=missing[0])

    response = execute(_collection(spec).create(parent=parent, body=body))
    success(f"{spec.noun.capitalize()} created: {response.get(spec.id_key, '')}")
    output(response, resolve_output_format(args))
    return 0


def cmd_update(spec: ResourceSpec, args: argparse.Namespace) -> int:
    """Update a resource, merging the changes into its current state.

    The API replaces the whole resource on update, so the current version is
    fetched first. Its fingerprint is reused unless ``--fingerprint`` is given.
    """
    path = _item_path(spec, args)
    updates = _build_body(spec, args)
    if not updates:
        raise ValidationError(
            "Nothing to update. Pass --data, --file or a field option such as --name."
        )

    collection = _collection(spec)
    current = execute(collection.get(path=path))
    fingerprint = args.fingerprint or current.get("fingerprint")

    kwargs: dict[str, Any] = {"path": path, "body": {**current, **updates}}
    if fingerprint:
        kwargs["fingerprint"] = fingerprint
    response = execute(collection.update(**kwargs))

    success(f"{spec.noun.capitalize()} updated successfully")
    output(response, resolve_output_format(args))
    return 0


def cmd_delete(spec: ResourceSpec, args: argparse.Namespace) -> int:
    path = _item_path(spec, args)
    if not require_force(args, spec.noun):
        return 1

    execute(_collection(spec).delete(path=path))
    success(f"{spec.noun.capitalize()} {path.rsplit('/', 1)[-1]} deleted successfully")
    return 0


def cmd_revert(spec: ResourceSpec, args: argparse.Namespace) -> int:
    kwargs: dict[str, str] = {"path": _item_path(spec, args)}
    if args.fingerprint:
        kwargs["fingerprint"] = args.fingerprint
    response = execute(_collection(spec).revert(**kwargs))

    success(f"{spec.noun.capitalize()} reverted successfully")
    output(response, resolve_output_format(args))
    return 0


def cmd_status(spec: ResourceSpec, args: argparse.Namespace) -> int:
    response = execute(_collection(spec).getStatus(path=_item_path(spec, args)))
    output(response, resolve_output_format(args))
    return 0


def cmd_create_version(spec: ResourceSpec, args: argparse.Namespace) -> int:
    """Snapshot a workspace into a new container version."""
    body = {key: value for key, value in (("name", args.name), ("notes", args.notes)) if value}
    response = execute(
        _collection(spec).create_version(path=_item_path(spec, args), body=body)
    )

    if response.get("compilerError"):
        raise ValidationError("Version creation failed: the workspace has compiler errors")
    version = response.get("containerVersion", {})
    success(f"Version created: {version.get('containerVersionId', '')}")
    output(response, resolve_output_format(args))
    return 0


def cmd_publish(spec: ResourceSpec, args: argparse.Namespace) -> int:
    kwargs: dict[str, str] = {"path": _item_path(spec, args)}
    if args.fingerprint:
        kwargs["fingerprint"] = args.fingerprint
    response = execute(_collection(spec).publish(**kwargs))

    if response.get("compilerError"):
        raise ValidationError("Publish failed: the container version has compiler errors")
    version = response.get("containerVersion", {})
    success(f"Version {version.get('containerVersionId', '')} published successfully")
    output(response, resolve_output_format(args))
    return 0


def cmd_live(spec: ResourceSpec, args: argparse.Namespace) -> int:
    response = execute(_collection(spec).live(parent=_parent_path(spec, args)))
    output(response, resolve_output_format(args))
    return 0


def cmd_latest(spec: ResourceSpec, args: argparse.Namespace) -> int:
    response = execute(_collection(spec).latest(parent=_parent_path(spec, args)))
    output(response, resolve_output_format(args))
    return 0


def cmd_enable(spec: ResourceSpec, args: argparse.Namespace) -> int:
    types = split_csv(args.types)
    response = execute(_collection(spec).create(parent=_parent_path(spec, args), type=types))
    success(f"Enabled {len(types)} built-in variable(s)")
    output(response, resolve_output_format(args))
    return 0


def cmd_disable(spec: ResourceSpec, args: argparse.Namespace) -> int:
    types = split_csv(args.types)
    execute(_collection(spec).delete(path=_parent_path(spec, args), type=types))
    success(f"Disabled {len(types)} built-in variable(s)")
    return 0


def cmd_revert_types(spec: ResourceSpec, args: argparse.Namespace) -> int:
    response = execute(_collection(spec).revert(path=_parent_path(spec, args), type=args.type))
    success("Built-in variable reverted successfully")
    output(response, resolve_output_format(args))
    return 0


def cmd_link(spec: ResourceSpec, args: argparse.Namespace) -> int:
    parent = _parent_path(spec, args)
    require_options({"destination_id": args.destination_id}, ["destination_id"])

    response = execute(
        _collection(spec).link(parent=parent, destinationId=args.destination_id)
    )
    success(f"Destination {args.destination_id} linked")
    output(response, resolve_output_format(args))
    return 0


def cmd_action(spec: ResourceSpec, args: argparse.Namespace, *, action: ActionSpec) -> int:
    path = _item_path(spec, args)
    kwargs: dict[str, Any] = {"path": path}
    if action.send_body:
        kwargs["body"] = {}
    response = execute(getattr(_collection(spec), action.method)(**kwargs))

    if action.message:
        success(action.message.format(id=path.rsplit("/", 1)[-1]))
    output(response, resolve_output_format(args))
    return 0


# =============================================================================
# Parser wiring
# =============================================================================


def _add_operation(
    spec: ResourceSpec,
    operations: argparse._SubParsersAction,
    name: str,
    help_text: str,
    handler: Callable[..., int],
    *,
    with_id: bool = True,
    with_output: bool = True,
) -> argparse.ArgumentParser:
    parser = operations.add_parser(name, help=help_text, description=help_text)
    add_scope_options(parser, spec.level)
    if with_id and spec.id_name and spec.id_name not in SCOPE_IDS[spec.level]:
        add_id_option(parser, spec.id_name, required=True)
    if with_output:
        add_output_option(parser)
    parser.set_defaults(func=partial(handler, spec))
    return parser


def _add_body_fields(spec: ResourceSpec, parser: argparse.ArgumentParser, create: bool) -> None:
    required = create and "name" in spec.required
    parser.add_argument(
        "-n", "--name", help=f"{spec.noun.capitalize()} name" + (" (required)" if required else "")
    )
    for option in spec.body_options:
        parser.add_argument(option.flag, dest=option.key, help=option.help)
    add_body_options(parser)


def _setup_list(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(spec, ops, "list", f"List {spec.command}", cmd_list, with_id=False)
    parser.add_argument("--page", type=int, help="Page number (client-side)")
    parser.add_argument("--page-size", type=int, help="Items per page (default 50, max 200)")


def _setup_get(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    _add_operation(spec, ops, "get", f"Get a {spec.noun}", cmd_get)


def _setup_create(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(spec, ops, "create", f"Create a {spec.noun}", cmd_create, with_id=False)
    _add_body_fields(spec, parser, create=True)


def _setup_update(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(spec, ops, "update", f"Update a {spec.noun}", cmd_update)
    _add_body_fields(spec, parser, create=False)
    parser.add_argument(
        "--fingerprint", help="Fingerprint for concurrency control (default: current)"
    )


def _setup_delete(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(
        spec, ops, "delete", f"Delete a {spec.noun}", cmd_delete, with_output=False
    )
    parser.add_argument("-f", "--force", action="store_true", help="Confirm deletion")


def _setup_revert(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(
        spec, ops, "revert", f"Revert workspace changes to a {spec.noun}", cmd_revert
    )
    parser.add_argument("--fingerprint", help="Fingerprint for concurrency control")


def _setup_status(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    _add_operation(spec, ops, "status", "Show workspace changes and conflicts", cmd_status)


def _setup_create_version(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(
        spec, ops, "create-version", "Create a container version from a workspace",
        cmd_create_version,
    )
    parser.add_argument("-n", "--name", help="Version name")
    parser.add_argument("--notes", help="Version notes")


def _setup_publish(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(spec, ops, "publish", "Publish a container version", cmd_publish)
    parser.add_argument("--fingerprint", help="Fingerprint for concurrency control")


def _setup_live(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    _add_operation(spec, ops, "live", "Get the live container version", cmd_live, with_id=False)


def _setup_latest(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    _add_operation(
        spec, ops, "latest", "Get the latest container version header", cmd_latest, with_id=False
    )


def _setup_enable(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(spec, ops, "enable", "Enable built-in variables by type", cmd_enable)
    parser.add_argument("--types", required=True, help="Comma-separated built-in variable types")


def _setup_disable(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(
        spec, ops, "disable", "Disable built-in variables by type", cmd_disable, with_output=False
    )
    parser.add_argument("--types", required=True, help="Comma-separated built-in variable types")


def _setup_revert_types(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    parser = _add_operation(
        spec, ops, "revert", "Revert changes to a built-in variable", cmd_revert_types
    )
    parser.add_argument("--type", required=True, help="Built-in variable type to revert")


def _setup_link(spec: ResourceSpec, ops: argparse._SubParsersAction) -> None:
    _add_operation(spec, ops, "link", "Link a destination to a container", cmd_link)


OPERATION_SETUP: dict[str, Callable[[ResourceSpec, argparse._SubParsersAction], None]] = {
    "list": _setup_list,
    "get": _setup_get,
    "create": _setup_create,
    "update": _setup_update,
    "delete": _setup_delete,
    "revert": _setup_revert,
    "status": _setup_status,
    "create-version": _setup_create_version,
    "publish": _setup_publish,
    "live": _setup_live,
    "latest": _setup_latest,
    "enable": _setup_enable,
    "disable": _setup_disable,
    "revert-types": _setup_revert_types,
    "link": _setup_link,
}


def register(subparsers: argparse._SubParsersAction) -> None:
    """Add one command per entry of ``RESOURCES``."""
    for spec in RESOURCES:
        parser = subparsers.add_parser(
            spec.command,
            help=f"Manage GTM {spec.command.replace('-', ' ')}",
        )
        operations = parser.add_subparsers(
            dest="operation", metavar="<operation>", required=True
        )
        for name in spec.operations:
            OPERATION_SETUP[name](spec, operations)
        for action in spec.actions:
            _add_operation(
                spec, operations, action.name, action.help, partial(cmd_action, action=action)
            )


__all__ = ["ActionSpec", "BodyOption", "ResourceSpec", "RESOURCES", "register"]
