"""CLI for Soar.

This module provides the command-line interface for the Pterodactyl panel:
application API commands (users, servers), client API commands (account,
two-factor, servers, files, databases) and configuration management.

Every API command follows the same path: resolve the effective config,
build the request for its surface, execute it once, normalize the response
envelope and print it. Failures are reported once and exit with status 1.
"""

import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, TypeVar
from urllib.parse import quote

import typer
from pydantic import BaseModel, ValidationError
from rich.markup import escape
from rich.table import Table

from . import __version__
from .client import PanelClient, build_request
from .config import (
    FlagOverrides,
    SoarConfig,
    apply_overrides,
    dump_config,
    find_config_file,
    get_global_config_file,
    get_local_config_file,
    load_config,
    resolve_config,
    set_config_value,
)
from .errors import (
    APIError,
    BuildError,
    CommandError,
    ConfigError,
    ConfigErrorKind,
    NormalizeError,
    SoarError,
    TransportError,
)
from .logging_config import Diagnostics, setup_logging
from .models import (
    HttpMethod,
    PasswordPayload,
    Shape,
    Surface,
    TwoFactorEnablePayload,
    UserPayload,
)
from .normalize import ResourceTransform, decode_two_factor, normalize

# Explicitly suppress httpx/httpcore INFO logs which configure their own loggers at import time
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# Root option name -> FlagOverrides field
OVERRIDE_PARAMS: dict[str, str] = {
    "app_url": "application_url",
    "app_key": "application_key",
    "client_url": "client_url",
    "client_key": "client_key",
    "parse_body": "parse_body",
    "indent": "parse_indent",
    "color": "use_color",
    "debug": "use_debug",
    "quiet": "quiet",
}

# ParameterSource names that count as explicit. Matched by name: newer typer
# releases ship their own click copy with a separate ParameterSource enum.
EXPLICIT_SOURCES = frozenset({"COMMANDLINE", "ENVIRONMENT"})


@dataclass
class Invocation:
    """Per-process state shared with every subcommand through ``ctx.obj``.

    Attributes:
        local: Use the project-scoped config file.
        overrides: Explicitly provided config overrides.
        diagnostics: Output handle for messages and results.
    """

    local: bool
    overrides: FlagOverrides
    diagnostics: Diagnostics

    def resolve(self) -> SoarConfig:
        """Resolve the effective config and apply its log options."""
        config = resolve_config(self.local, self.overrides)
        self.diagnostics.configure(config.logs)
        return config


def _source_name(ctx: typer.Context, param: str) -> str | None:
    source = ctx.get_parameter_source(param)
    return source.name if source is not None else None


def collect_overrides(ctx: typer.Context) -> FlagOverrides:
    """Build overrides from the root options the user actually passed.

    Args:
        ctx: Root command context.

    Returns:
        FlagOverrides whose set fields are exactly the explicit options.
    """
    values = {
        field_name: ctx.params[param]
        for param, field_name in OVERRIDE_PARAMS.items()
        if _source_name(ctx, param) in EXPLICIT_SOURCES
    }
    return FlagOverrides(**values)


def build_query(params: dict[str, str | int | None]) -> str:
    """Build a query string, skipping unset values.

    Values are percent-encoded; keys such as ``filter[email]`` are used as-is.

    Args:
        params: Query parameters in output order.

    Returns:
        "" when no value is set, otherwise "?k=v&k2=v2".
    """
    pairs = [
        f"{key}={quote(str(value), safe='')}"
        for key, value in params.items()
        if value is not None and value != ""
    ]
    if not pairs:
        return ""
    return "?" + "&".join(pairs)


def lookup_path(base: str, resource_id: int | None, external: str | None) -> tuple[str, Shape]:
    """Resolve the path and response shape of a ``*:get`` command.

    Args:
        base: Collection path, e.g. /api/application/users.
        resource_id: Panel ID of a single resource.
        external: External ID of a single resource.

    Returns:
        Tuple of (path, expected shape).

    Raises:
        CommandError: If both identifiers are given.
    """
    if resource_id is not None and external:
        raise CommandError("--id and --external flags specified; pick one")
    if resource_id is not None:
        return f"{base}/{resource_id}", Shape.SINGLE
    if external:
        return f"{base}/external/{quote(external, safe='')}", Shape.SINGLE
    return base, Shape.COLLECTION


def load_payload(src: Path, model: type[PayloadT]) -> PayloadT:
    """Read and validate a JSON request body from a file.

    Raises:
        CommandError: If the file cannot be read or fails validation.
    """
    try:
        content = src.read_bytes()
    except OSError as e:
        raise CommandError(f"failed to read source file: {e}") from e
    try:
        return model.model_validate_json(content)
    except ValidationError as e:
        raise CommandError(f"invalid json in {src}: {e}") from e


def report_error(diagnostics: Diagnostics, error: SoarError) -> None:
    """Report a failure once: a headline plus the underlying cause."""
    if isinstance(error, ConfigError) and error.kind is ConfigErrorKind.WRITE:
        diagnostics.error("failed to save configuration", error)
    elif isinstance(error, ConfigError):
        diagnostics.error("failed to load configuration", error)
        if error.kind is ConfigErrorKind.NOT_FOUND:
            diagnostics.info("run 'soar config setup' to create one")
    elif isinstance(error, BuildError):
        diagnostics.error("cannot build request", error)
    elif isinstance(error, TransportError):
        diagnostics.error("could not reach the panel", error)
    elif isinstance(error, APIError):
        diagnostics.error(f"the panel returned an error (status {error.status_code})")
        for detail in error.details:
            diagnostics.error(detail)
    elif isinstance(error, NormalizeError):
        diagnostics.error("failed to process the response", error)
    else:
        diagnostics.error("command error", error)


@contextmanager
def reported_errors(ctx: typer.Context) -> Iterator[Invocation]:
    """Yield the invocation; turn any SoarError into a report and exit 1."""
    invocation: Invocation = ctx.obj
    try:
        yield invocation
    except SoarError as e:
        report_error(invocation.diagnostics, e)
        raise typer.Exit(1) from e


def run_request(
    invocation: Invocation,
    surface: Surface,
    method: HttpMethod,
    path: str,
    shape: Shape = Shape.SINGLE,
    body: BaseModel | None = None,
    transform: ResourceTransform | None = None,
    raw: bool = False,
) -> None:
    """Run one API request and print its result.

    Args:
        invocation: Current invocation state.
        surface: API surface to authenticate against.
        method: HTTP method.
        path: Request path with any query string already encoded.
        shape: Envelope shape the response must have.
        body: Optional request body model.
        transform: Optional per-resource post-processing hook.
        raw: Print the response bytes without normalization.

    Raises:
        SoarError: Any configuration, request or response failure.
    """
    config = invocation.resolve()
    payload = body.model_dump_json(exclude_none=True).encode("utf-8") if body else None
    request = build_request(config.credentials(surface), method, path, payload)

    with PanelClient(invocation.diagnostics) as client:
        data = client.execute(request)

    if raw:
        if data is not None:
            invocation.diagnostics.raw(data)
        return

    output = normalize(data, config, shape, transform)
    if output is not None:
        invocation.diagnostics.line(output)


# =============================================================================
# Main Application
# =============================================================================

app = typer.Typer(
    name="soar",
    help="Manage a Pterodactyl panel through its Application and Client APIs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"soar {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    local: Annotated[
        bool,
        typer.Option("--local", "-l", help="Use the local (.soar-local.yml) configuration."),
    ] = False,
    app_url: Annotated[
        str | None,
        typer.Option("--app-url", help="Panel URL for the application API.", envvar="SOAR_APP_URL"),
    ] = None,
    app_key: Annotated[
        str | None,
        typer.Option("--app-key", help="Application API key.", envvar="SOAR_APP_KEY"),
    ] = None,
    client_url: Annotated[
        str | None,
        typer.Option("--client-url", help="Panel URL for the client API.", envvar="SOAR_CLIENT_URL"),
    ] = None,
    client_key: Annotated[
        str | None,
        typer.Option("--client-key", help="Client API key.", envvar="SOAR_CLIENT_KEY"),
    ] = None,
    parse_body: Annotated[
        bool,
        typer.Option(
            "--parse-body/--no-parse-body",
            help="Strip response envelopes down to resource attributes.",
            show_default=False,
        ),
    ] = True,
    indent: Annotated[
        bool,
        typer.Option("--indent/--no-indent", help="Pretty-print JSON output.", show_default=False),
    ] = True,
    color: Annotated[
        bool,
        typer.Option("--color/--no-color", help="Use colored output.", show_default=False),
    ] = True,
    debug: Annotated[
        bool,
        typer.Option("--debug/--no-debug", help="Show debug messages.", show_default=False),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet/--no-quiet", "-q", help="Hide info and warning messages.", show_default=False),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the result to a file instead of stdout."),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            "-L",
            help="Log file path. When set, logs are written to file only (not stdout).",
            envvar="SOAR_LOG_FILE",
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            help="Log level for all loggers including httpx (DEBUG, INFO, WARNING, ERROR, CRITICAL).",
            envvar="SOAR_LOG_LEVEL",
        ),
    ] = "WARNING",
    version: Annotated[
        bool,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version."),
    ] = False,
) -> None:
    """Configure the effective configuration overrides and logging.

    Options given here override the selected configuration file for this
    invocation only; options that are not given never do.
    """
    level = getattr(logging, log_level.upper(), logging.WARNING)
    logging.getLogger("httpx").setLevel(level)
    logging.getLogger("httpcore").setLevel(level)

    overrides = collect_overrides(ctx)
    log_options = SoarConfig().logs.model_copy(
        update={
            name: getattr(overrides, name)
            for name in ("use_color", "use_debug", "quiet")
            if name in overrides.model_fields_set
        }
    )
    diagnostics = Diagnostics(log_options, output_file=output)
    try:
        logger = setup_logging(log_file=log_file, log_level=log_level)
    except OSError as e:
        report_error(diagnostics, CommandError(f"cannot open log file {log_file}: {e}"))
        raise typer.Exit(1) from e

    diagnostics.logger = logger
    ctx.obj = Invocation(local=local, overrides=overrides, diagnostics=diagnostics)
    logger.info(f"soar started with log level {log_level}")


# =============================================================================
# Application API Commands
# =============================================================================

application_app = typer.Typer(
    name="app",
    help="Commands for interacting with the Application API.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(application_app, name="app")

USERS_PATH = "/api/application/users"
SERVERS_PATH = "/api/application/servers"


@application_app.command("users:get")
def users_get(
    ctx: typer.Context,
    user_id: Annotated[int | None, typer.Option("--id", help="The user ID to fetch.")] = None,
    external: Annotated[
        str | None, typer.Option("--external", help="The external user ID to fetch.")
    ] = None,
    username: Annotated[str | None, typer.Option("--username", help="The username to query.")] = None,
    email: Annotated[str | None, typer.Option("--email", help="The email to query.")] = None,
    uuid: Annotated[str | None, typer.Option("--uuid", help="The UUID to query.")] = None,
) -> None:
    """Fetch panel accounts (one by ID, or a filtered list)."""
    with reported_errors(ctx) as invocation:
        path, shape = lookup_path(USERS_PATH, user_id, external)
        query = build_query(
            {
                "filter[username]": username,
                "filter[email]": email,
                "filter[uuid]": uuid,
            }
        )
        run_request(invocation, Surface.APPLICATION, HttpMethod.GET, path + query, shape)


@application_app.command("users:create")
def users_create(
    ctx: typer.Context,
    src: Annotated[Path, typer.Option("--src", "-s", help="JSON file describing the user.")],
) -> None:
    """Create a panel account from a JSON file."""
    with reported_errors(ctx) as invocation:
        payload = load_payload(src, UserPayload)
        run_request(invocation, Surface.APPLICATION, HttpMethod.POST, USERS_PATH, body=payload)


@application_app.command("users:update")
def users_update(
    ctx: typer.Context,
    user_id: Annotated[int, typer.Argument(help="The ID of the user account to update.")],
    src: Annotated[Path, typer.Option("--src", "-s", help="JSON file describing the user.")],
) -> None:
    """Update a panel account from a JSON file."""
    with reported_errors(ctx) as invocation:
        payload = load_payload(src, UserPayload)
        run_request(
            invocation,
            Surface.APPLICATION,
            HttpMethod.PATCH,
            f"{USERS_PATH}/{user_id}",
            body=payload,
        )


@application_app.command("users:delete")
def users_delete(
    ctx: typer.Context,
    user_id: Annotated[int, typer.Argument(help="The ID of the user account to delete.")],
) -> None:
    """Delete a panel account."""
    with reported_errors(ctx) as invocation:
        run_request(invocation, Surface.APPLICATION, HttpMethod.DELETE, f"{USERS_PATH}/{user_id}")
        invocation.diagnostics.info(f"deleted user account: {user_id}")


@application_app.command("servers:get")
def servers_get(
    ctx: typer.Context,
    server_id: Annotated[int | None, typer.Option("--id", help="The server ID to fetch.")] = None,
    external: Annotated[
        str | None, typer.Option("--external", help="The external server ID to fetch.")
    ] = None,
    name: Annotated[str | None, typer.Option("--name", help="The server name to query.")] = None,
    uuid: Annotated[str | None, typer.Option("--uuid", help="The UUID to query.")] = None,
    image: Annotated[str | None, typer.Option("--image", help="The docker image to query.")] = None,
) -> None:
    """Fetch servers (one by ID, or a filtered list)."""
    with reported_errors(ctx) as invocation:
        path, shape = lookup_path(SERVERS_PATH, server_id, external)
        query = build_query(
            {
                "filter[name]": name,
                "filter[uuid]": uuid,
                "filter[image]": image,
            }
        )
        run_request(invocation, Surface.APPLICATION, HttpMethod.GET, path + query, shape)


@application_app.command("servers:suspend")
def servers_suspend(
    ctx: typer.Context,
    server_id: Annotated[int, typer.Argument(help="The ID of the server to suspend.")],
) -> None:
    """Suspend a server."""
    with reported_errors(ctx) as invocation:
        run_request(
            invocation, Surface.APPLICATION, HttpMethod.POST, f"{SERVERS_PATH}/{server_id}/suspend"
        )
        invocation.diagnostics.info(f"suspended server: {server_id}")


@application_app.command("servers:unsuspend")
def servers_unsuspend(
    ctx: typer.Context,
    server_id: Annotated[int, typer.Argument(help="The ID of the server to unsuspend.")],
) -> None:
    """Unsuspend a server."""
    with reported_errors(ctx) as invocation:
        run_request(
            invocation,
            Surface.APPLICATION,
            HttpMethod.POST,
            f"{SERVERS_PATH}/{server_id}/unsuspend",
        )
        invocation.diagnostics.info(f"unsuspended server: {server_id}")


@application_app.command("servers:delete")
def servers_delete(
    ctx: typer.Context,
    server_id: Annotated[int, typer.Argument(help="The ID of the server to delete.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Delete even if the node is unreachable.")
    ] = False,
) -> None:
    """Delete a server."""
    with reported_errors(ctx) as invocation:
        path = f"{SERVERS_PATH}/{server_id}" + ("/force" if force else "")
        run_request(invocation, Surface.APPLICATION, HttpMethod.DELETE, path)
        invocation.diagnostics.info(f"deleted server: {server_id}")


# =============================================================================
# Client API Commands
# =============================================================================

client_app = typer.Typer(
    name="client",
    help="Commands for interacting with the Client API.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(client_app, name="client")

ACCOUNT_PATH = "/api/client/account"
TWO_FACTOR_PATH = f"{ACCOUNT_PATH}/two-factor"


def client_server_path(identifier: str, suffix: str) -> str:
    return f"/api/client/servers/{quote(identifier, safe='')}/{suffix}"


@client_app.command("account:get")
def account_get(ctx: typer.Context) -> None:
    """Get account information."""
    with reported_errors(ctx) as invocation:
        run_request(invocation, Surface.CLIENT, HttpMethod.GET, ACCOUNT_PATH)


@client_app.command("account:perms")
@client_app.command("account:p", hidden=True)
def account_perms(ctx: typer.Context) -> None:
    """Get the panel's system permissions."""
    with reported_errors(ctx) as invocation:
        run_request(invocation, Surface.CLIENT, HttpMethod.GET, "/api/client/permissions")


@client_app.command("account:2fa:get")
@client_app.command("2fa:get", hidden=True)
def two_factor_get(ctx: typer.Context) -> None:
    """Get the two-factor enrollment secret and QR code URL."""
    with reported_errors(ctx) as invocation:
        run_request(
            invocation,
            Surface.CLIENT,
            HttpMethod.GET,
            TWO_FACTOR_PATH,
            Shape.DATA,
            transform=decode_two_factor,
        )


@client_app.command("account:2fa:enable")
@client_app.command("2fa:enable", hidden=True)
def two_factor_enable(
    ctx: typer.Context,
    code: Annotated[str, typer.Argument(help="The current two-factor code.")],
    password: Annotated[str, typer.Argument(help="The account password.")],
) -> None:
    """Enable two-factor authentication and print the recovery tokens."""
    with reported_errors(ctx) as invocation:
        run_request(
            invocation,
            Surface.CLIENT,
            HttpMethod.POST,
            TWO_FACTOR_PATH,
            body=TwoFactorEnablePayload(code=code, password=password),
        )


@client_app.command("account:2fa:disable")
@client_app.command("2fa:disable", hidden=True)
def two_factor_disable(
    ctx: typer.Context,
    password: Annotated[str, typer.Argument(help="The account password.")],
) -> None:
    """Disable two-factor authentication."""
    with reported_errors(ctx) as invocation:
        run_request(
            invocation,
            Surface.CLIENT,
            HttpMethod.DELETE,
            TWO_FACTOR_PATH,
            body=PasswordPayload(password=password),
        )
        invocation.diagnostics.info("disabled two-factor authentication")


@client_app.command("servers:get")
def client_servers_get(ctx: typer.Context) -> None:
    """List servers the account can access."""
    with reported_errors(ctx) as invocation:
        run_request(invocation, Surface.CLIENT, HttpMethod.GET, "/api/client", Shape.COLLECTION)


@client_app.command("files:list")
def files_list(
    ctx: typer.Context,
    identifier: Annotated[str, typer.Argument(help="The server identifier.")],
    directory: Annotated[str, typer.Option("--dir", "-d", help="Directory to list.")] = "/",
) -> None:
    """List files in a server directory."""
    with reported_errors(ctx) as invocation:
        path = client_server_path(identifier, "files/list") + build_query({"directory": directory})
        run_request(invocation, Surface.CLIENT, HttpMethod.GET, path, Shape.COLLECTION)


@client_app.command("files:contents")
def files_contents(
    ctx: typer.Context,
    identifier: Annotated[str, typer.Argument(help="The server identifier.")],
    file: Annotated[str, typer.Argument(help="Path of the file to read.")],
) -> None:
    """Print the raw contents of a server file."""
    with reported_errors(ctx) as invocation:
        path = client_server_path(identifier, "files/contents") + build_query({"file": file})
        run_request(invocation, Surface.CLIENT, HttpMethod.GET, path, raw=True)


@client_app.command("databases:get")
def databases_get(
    ctx: typer.Context,
    identifier: Annotated[str, typer.Argument(help="The server identifier.")],
    password: Annotated[
        bool, typer.Option("--password", help="Include database passwords.")
    ] = False,
) -> None:
    """List databases of a server."""
    with reported_errors(ctx) as invocation:
        query = build_query({"include": "password" if password else None})
        path = client_server_path(identifier, "databases") + query
        run_request(invocation, Surface.CLIENT, HttpMethod.GET, path, Shape.COLLECTION)


# =============================================================================
# Configuration Commands
# =============================================================================

config_app = typer.Typer(
    name="config",
    help="Inspect and create Soar configuration files.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")


def _display(value: str, hide: bool) -> str:
    if not value:
        return "[dim]Not Set[/dim]"
    if hide:
        return "•" * len(value)
    return escape(value)


@config_app.command("info")
def config_info(
    ctx: typer.Context,
    hide: Annotated[bool, typer.Option("--hide", help="Mask API keys in the output.")] = False,
) -> None:
    """Show the effective configuration (global, or local with --local)."""
    with reported_errors(ctx) as invocation:
        path = find_config_file(invocation.local)
        config = invocation.resolve()

        scope = "Local" if invocation.local else "Global"
        table = Table(title=f"Soar {scope} Config", caption=str(path))
        table.add_column("Section", style="cyan")
        table.add_column("Option", style="magenta")
        table.add_column("Value", style="green")

        for surface in Surface:
            block = config.surface(surface)
            table.add_row(surface.value, "url", _display(block.url, hide=False))
            table.add_row(surface.value, "key", _display(block.key, hide=hide))
        for name, value in config.http.model_dump().items():
            table.add_row("http", name, str(value))
        for name, value in config.logs.model_dump().items():
            table.add_row("logs", name, str(value))

        invocation.diagnostics.render(table)


@config_app.command("setup")
def config_setup(
    ctx: typer.Context,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite an existing file.")
    ] = False,
) -> None:
    """Create a configuration file (global, or local with --local).

    A local setup starts from the global file when one exists. Root options
    such as --app-url and --app-key are written into the new file.
    """
    with reported_errors(ctx) as invocation:
        target = get_local_config_file() if invocation.local else get_global_config_file()
        if target.exists() and not force:
            raise CommandError(f"{target} already exists; use --force to overwrite it")

        base = SoarConfig()
        if invocation.local:
            try:
                source = find_config_file(local=False)
            except ConfigError:
                source = None
            if source is not None and not invocation.overrides.model_fields_set:
                try:
                    shutil.copyfile(source, target)
                except OSError as e:
                    raise ConfigError(
                        ConfigErrorKind.WRITE, f"failed to copy {source} to {target}: {e}"
                    ) from e
                invocation.diagnostics.info(f"copied {source} to {target}")
                return
            if source is not None:
                base = load_config(local=False, interpolate_env=False)

        dump_config(apply_overrides(base, invocation.overrides), target)
        invocation.diagnostics.info(f"wrote configuration to {target}")


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="The config key to set, e.g. application.key.")],
    value: Annotated[str, typer.Argument(help="The value to set the key to.")],
) -> None:
    """Set one option in the configuration file (global, or local with --local)."""
    with reported_errors(ctx) as invocation:
        path = find_config_file(invocation.local)
        try:
            set_config_value(path, key, value)
        except ValueError as e:
            raise CommandError(str(e)) from e
        invocation.diagnostics.info(f"updated {key} in {path}")
