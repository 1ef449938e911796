import json
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, NoReturn, Optional, Union

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .auth_client import DEFAULT_SCOPES, GlobusAuthClient
from .config import ClientConfig, DEFAULT_PROFILE, config_dir, load_client_config
from .encryption import TokenCipher
from .exceptions import AuthServiceError, ExpiredUnrefreshableError, GcsCliError
from .gcs_client import GCSClient
from .keys import KeyManager, PassphraseKeyManager
from .logging_config import get_logger, setup_logging
from .secure_input import ReadSecretOptions, read_secret, validate_secret
from .tokens import TokenInfo, TokenStore
from .vault import KeyringSecretStore, SecretStore

app = typer.Typer(help="Globus Connect Server CLI: authentication and credential management.")
token_app = typer.Typer(help="Inspect and refresh stored tokens")
key_app = typer.Typer(help="Manage the token encryption key in the system keyring")
user_credential_app = typer.Typer(help="Manage user credentials on an endpoint")
console = Console()
err_console = Console(stderr=True)
logger = get_logger("cli")

app.add_typer(token_app, name="token")
app.add_typer(key_app, name="key")
app.add_typer(user_credential_app, name="user-credential")

MAX_SECRET_LENGTH = 1024

ProfileOption = typer.Option(DEFAULT_PROFILE, "--profile", "-p", help="Profile name")


def _fail(exc: Exception) -> NoReturn:
    message = exc.message if isinstance(exc, GcsCliError) else str(exc)
    err_console.print(f"[red]Error: {escape(message)}[/red]")
    remedy = getattr(exc, "remedy", None)
    if remedy:
        err_console.print(f"[yellow]{escape(remedy)}[/yellow]")
    raise typer.Exit(1)


def _secret_store() -> SecretStore:
    return KeyringSecretStore()


def _key_manager(ctx: typer.Context) -> Union[KeyManager, PassphraseKeyManager]:
    passphrase_env = (ctx.obj or {}).get("passphrase_env")
    if passphrase_env:
        passphrase = read_secret(ReadSecretOptions(env_var=passphrase_env))
        logger.warning(
            "Using a passphrase-derived encryption key; tokens are not protected "
            "by the system keyring"
        )
        return PassphraseKeyManager(passphrase.value)
    return KeyManager(_secret_store())


def _token_store(ctx: typer.Context) -> TokenStore:
    return TokenStore(TokenCipher(_key_manager(ctx)), config_dir())


def _auth_client(config: ClientConfig) -> GlobusAuthClient:
    return GlobusAuthClient.from_config(config)


def _load_valid_token(store: TokenStore, config: ClientConfig) -> TokenInfo:
    """Load the profile token, refreshing it first when it is about to expire."""
    token = store.load(config.profile)
    if token.is_valid():
        return token
    if not token.can_refresh():
        raise ExpiredUnrefreshableError(config.profile)
    with _auth_client(config) as auth:
        store.refresh_if_needed(config.profile, auth)
    return store.load(config.profile)


def _expires_in(token: TokenInfo) -> str:
    remaining = int((token.expires_at - datetime.now(timezone.utc)).total_seconds())
    if remaining <= 0:
        return "expired"
    hours, rest = divmod(remaining, 3600)
    return f"{hours}h {rest // 60}m"


def _token_summary(profile: str, token: TokenInfo) -> Dict[str, Any]:
    return {
        "profile": profile,
        "expires_at": token.expires_at.isoformat(),
        "scopes": token.scopes,
        "resource_server": token.resource_server,
        "valid": token.is_valid(),
        "refreshable": token.can_refresh(),
    }


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(
        "WARNING", "--log-level", envvar="GLOBUS_CONNECT_SERVER_LOG_LEVEL", help="Log level"
    ),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON"),
    passphrase_env: Optional[str] = typer.Option(
        None,
        "--passphrase-env",
        help="Derive the token encryption key from this environment variable "
        "instead of the system keyring (last resort for hosts without one)",
    ),
):
    setup_logging(level=log_level, json_format=log_json)
    ctx.obj = {"passphrase_env": passphrase_env}


@app.command()
def login(
    ctx: typer.Context,
    profile: str = ProfileOption,
    scopes: str = typer.Option(DEFAULT_SCOPES, help="OAuth2 scopes (space-separated)"),
):
    """Authenticate with Globus Auth and store the tokens encrypted.

    Opens nothing automatically: visit the printed URL, then paste the
    authorization code shown by Globus.
    """
    try:
        config = load_client_config(profile)
        store = _token_store(ctx)
        with _auth_client(config) as auth:
            state = f"gcs-cli-{secrets.token_urlsafe(16)}"
            console.print("Please authenticate by visiting this URL:\n")
            console.print(escape(auth.authorization_url(state, scopes)), soft_wrap=True)
            console.print()
            code = typer.prompt("Enter authorization code", err=True).strip()
            if not code:
                raise AuthServiceError("exchange code", "no authorization code entered")
            console.print("Exchanging authorization code for tokens...")
            token = TokenInfo.from_token_response(auth.exchange_code(code))
        store.save(profile, token)
    except (GcsCliError, OSError) as exc:
        _fail(exc)

    console.print("[green]✓ Login successful![/green]")
    console.print(f"Profile: {escape(profile)}")
    console.print(f"Token expires: {token.expires_at.isoformat()}")


@app.command()
def logout(ctx: typer.Context, profile: str = ProfileOption):
    """Remove stored authentication tokens for a profile."""
    try:
        removed = _token_store(ctx).delete(profile)
    except (GcsCliError, OSError) as exc:
        _fail(exc)
    if not removed:
        console.print(f"[yellow]No active session for profile: {escape(profile)}[/yellow]")
        return
    console.print(f"[green]✓ Logged out from profile: {escape(profile)}[/green]")


@app.command()
def whoami(
    ctx: typer.Context,
    profile: str = ProfileOption,
    output_format: str = typer.Option("text", "--format", "-f", help="Output format (text, json)"),
    introspect: bool = typer.Option(
        False, "--introspect", help="Ask Globus Auth for the identity behind the token"
    ),
):
    """Show the current authenticated identity."""
    try:
        config = load_client_config(profile)
        token = _load_valid_token(_token_store(ctx), config)
        info = _token_summary(profile, token)
        if introspect:
            with _auth_client(config) as auth:
                identity = auth.introspect_token(token.access_token)
            if not identity.active:
                raise AuthServiceError("introspect token", "token is not active, please login again")
            info.update(
                name=identity.name,
                username=identity.username,
                email=identity.email,
                sub=identity.sub,
            )
    except (GcsCliError, OSError) as exc:
        _fail(exc)

    if output_format == "json":
        print(json.dumps(info, indent=2))
        return

    table = Table(title="Authenticated User Information", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for field, label in (("name", "Name"), ("username", "Username"), ("email", "Email"), ("sub", "ID")):
        if info.get(field):
            table.add_row(label, escape(str(info[field])))
    table.add_row("Profile", escape(profile))
    table.add_row("Expires", info["expires_at"])
    table.add_row("Scopes", escape(" ".join(token.scopes)) or "-")
    if token.resource_server:
        table.add_row("Resource server", escape(token.resource_server))
    console.print(table)


@token_app.command("status")
def token_status(ctx: typer.Context, profile: str = ProfileOption):
    """Show validity and refreshability of the stored token."""
    try:
        token = _token_store(ctx).load(profile)
    except (GcsCliError, OSError) as exc:
        _fail(exc)

    state = "[green]valid[/green]" if token.is_valid() else "[red]expired[/red]"
    console.print(f"Profile:     {escape(profile)}")
    console.print(f"Status:      {state}")
    console.print(f"Expires at:  {token.expires_at.isoformat()} ({_expires_in(token)})")
    console.print(f"Refreshable: {'yes' if token.can_refresh() else 'no'}")


@token_app.command("refresh")
def token_refresh(
    ctx: typer.Context,
    profile: str = ProfileOption,
    force: bool = typer.Option(False, "--force", help="Refresh even if the token is still valid"),
):
    """Refresh the stored token if it is expired or about to expire."""
    try:
        config = load_client_config(profile)
        store = _token_store(ctx)
        with _auth_client(config) as auth:
            refreshed = store.refresh_if_needed(profile, auth, force=force)
    except (GcsCliError, OSError) as exc:
        _fail(exc)

    if refreshed:
        console.print(f"[green]✓ Token refreshed for profile: {escape(profile)}[/green]")
    else:
        console.print(f"Token for profile {escape(profile)} is still valid; nothing to do.")


@token_app.command("list")
def token_list(ctx: typer.Context):
    """List profiles with stored tokens."""
    try:
        store = _token_store(ctx)
        profiles = store.list_profiles()
    except (GcsCliError, OSError) as exc:
        _fail(exc)

    if not profiles:
        console.print("[yellow]No stored tokens.[/yellow]")
        return

    table = Table(title="Stored tokens")
    table.add_column("Profile", style="cyan")
    table.add_column("Status")
    table.add_column("Expires", style="dim")
    for profile in profiles:
        try:
            token = store.load(profile)
        except (GcsCliError, OSError) as exc:
            table.add_row(escape(profile), f"[red]{escape(getattr(exc, 'message', str(exc)))}[/red]", "-")
            continue
        status = "[green]valid[/green]" if token.is_valid() else "[red]expired[/red]"
        table.add_row(escape(profile), status, token.expires_at.isoformat())
    console.print(table)


@key_app.command("status")
def key_status(ctx: typer.Context):
    """Report whether an encryption key exists."""
    try:
        present = _key_manager(ctx).exists()
    except GcsCliError as exc:
        _fail(exc)
    if present:
        console.print("[green]Encryption key present.[/green]")
    else:
        console.print("[yellow]No encryption key stored; one is created on next login.[/yellow]")


@key_app.command("clear")
def key_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete the encryption key. Every stored token becomes unreadable."""
    if not yes:
        typer.confirm(
            "This makes every encrypted token file unreadable. Continue?", abort=True
        )
    try:
        _key_manager(ctx).clear()
    except GcsCliError as exc:
        _fail(exc)
    console.print("[green]✓ Encryption key removed.[/green]")


@key_app.command("rotate")
def key_rotate(ctx: typer.Context):
    """Rotate the encryption key (not yet supported)."""
    try:
        _key_manager(ctx).rotate()
    except GcsCliError as exc:
        _fail(exc)


@user_credential_app.command("s3-keys-update")
def s3_keys_update(
    ctx: typer.Context,
    endpoint: str = typer.Option(..., "--endpoint", help="Endpoint FQDN (e.g., abc.def.data.globus.org)"),
    credential: str = typer.Option(..., "--credential", help="User credential ID"),
    access_key_id: str = typer.Option(..., "--access-key-id", help="S3 access key ID"),
    secret_stdin: bool = typer.Option(False, "--secret-stdin", help="Read new secret access key from stdin"),
    secret_env: Optional[str] = typer.Option(
        None, "--secret-env", help="Read new secret access key from environment variable"
    ),
    profile: str = ProfileOption,
    output_format: str = typer.Option("text", "--format", "-f", help="Output format (text, json)"),
):
    """Update the secret access key for an existing S3 IAM key.

    The secret is never taken as an argument. Sources in priority order:
    --secret-env NAME, --secret-stdin, then an interactive hidden prompt.
    """
    try:
        config = load_client_config(profile)
        token = _load_valid_token(_token_store(ctx), config)
        secret = read_secret(
            ReadSecretOptions(
                prompt="Enter new S3 secret access key",
                use_stdin=secret_stdin,
                env_var=secret_env,
            )
        )
        validate_secret(secret, min_length=1, max_length=MAX_SECRET_LENGTH)
        try:
            with GCSClient(endpoint, token.access_token, timeout=config.timeout_s) as gcs:
                updated = gcs.update_s3_key(credential, access_key_id, secret)
        finally:
            secret.clear()
    except (GcsCliError, OSError, ValueError) as exc:
        _fail(exc)

    if output_format == "json":
        print(json.dumps(updated, indent=2))
        return
    console.print("[green]S3 access key updated successfully![/green]")
    console.print(f"Access Key ID: {escape(access_key_id)}")


if __name__ == "__main__":
    app()
