"""CLI interface for oneclick using Typer.

This module provides the main entry point for the oneclick tool, with
commands to download, probe, list, upload and delete files on one-click
hosters, list the available site modules, and verify dependencies.

Results are printed on stdout, logs on stderr. The exit status is the
outcome code of the item (or 100 + the first failure code when several
items were processed).
"""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .captcha.viewer import ASCII_VIEWERS, X11_VIEWERS
from .core.config import CaptchaCredentials, ToolkitConfig
from .core.errors import ErrorKind, HosterError
from .core.pipeline import BatchResult, BatchRunner
from .core.retry import RetryLadder
from .modules import default_registry
from .modules.base import OPERATIONS
from .utils.formatting import check_format
from .utils.logging import DEFAULT_VERBOSITY, mask_account, mask_sensitive_data, setup_logging

# Load .env file if present
load_dotenv()

app = typer.Typer(
    name="oneclick",
    help="Download, upload, delete, list and probe files on one-click hosters.",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


# Options shared by several commands

VERBOSE_OPTION = typer.Option(
    DEFAULT_VERBOSITY,
    "--verbose",
    "-v",
    min=0,
    max=4,
    help="Verbosity: 0=none, 1=error, 2=notice, 3=debug, 4=report",
)
QUIET_OPTION = typer.Option(False, "--quiet", "-q", help="Alias for -v0")
LOG_FILE_OPTION = typer.Option(None, "--log-file", help="Also write a debug log to this file")
TIMEOUT_OPTION = typer.Option(
    None, "--timeout", "-t", min=0, help="Timeout after SECS seconds of waits"
)
MAX_RETRIES_OPTION = typer.Option(
    None,
    "--max-retries",
    "-r",
    min=0,
    help="Set maximum retries for captcha solving and temporary errors (0: no retry)",
)
COOKIES_OPTION = typer.Option(
    None, "--cookies", "-b", help="Netscape cookie file seeding every session"
)
AUTH_OPTION = typer.Option(
    None, "--auth", "-a", envvar="ONECLICK_AUTH", help="Account as USER:PASSWORD"
)
LINK_PASSWORD_OPTION = typer.Option(
    None, "--link-password", "-p", help="Password for protected links"
)
CAPTCHA_METHOD_OPTION = typer.Option(
    None,
    "--captchamethod",
    envvar="CAPTCHA_METHOD",
    help="Force captcha method: none, prompt, nox, online, ocr",
)
CAPTCHA_PROGRAM_OPTION = typer.Option(
    None, "--captchaprogram", envvar="CAPTCHA_PROGRAM", help="External captcha solver program"
)
ANTIGATE_OPTION = typer.Option(None, "--antigate", envvar="CAPTCHA_ANTIGATE", help="antigate.com key")
NINEKW_OPTION = typer.Option(None, "--9kweu", envvar="CAPTCHA_9KWEU", help="9kw.eu API key")
BHOOD_OPTION = typer.Option(
    None, "--captchabhood", envvar="CAPTCHA_BHOOD", help="Captcha Brotherhood account USER:PASSWORD"
)
DEATHBY_OPTION = typer.Option(
    None, "--deathbycaptcha", envvar="CAPTCHA_DEATHBY", help="DeathByCaptcha account USER:PASSWORD"
)
PIXELDRAIN_OPTION = typer.Option(
    None, "--pixeldrain-api-key", envvar="PIXELDRAIN_API_KEY", help="Pixeldrain API key"
)


def _fail(error: HosterError) -> typer.Exit:
    """Report an invocation error and build the matching exit."""
    err_console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(int(error.kind))


def _init(verbose: int, quiet: bool, log_file: Optional[Path]) -> int:
    verbosity = 0 if quiet else verbose
    setup_logging(verbosity, log_file)
    return verbosity


def _prepare(config: ToolkitConfig) -> None:
    try:
        config.validate()
    except HosterError as e:
        raise _fail(e)


def _finish(result: BatchResult) -> None:
    """Exit with the representative status of the batch."""
    raise typer.Exit(result.exit_code())


def _new_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=err_console,
        transient=False,
    )


@app.command()
def download(
    items: List[str] = typer.Argument(..., help="URLs or files of links"),
    output_directory: Optional[Path] = typer.Option(
        None, "--output-directory", "-o", help="Directory where files will be saved"
    ),
    temp_directory: Optional[Path] = typer.Option(
        None, "--temp-directory", help="Directory where files are downloaded before being moved"
    ),
    no_overwrite: bool = typer.Option(
        False, "--no-overwrite", "-x", help="Do not overwrite existing files"
    ),
    check_link: bool = typer.Option(
        False, "--check-link", "-c", help="Check if a link exists and return"
    ),
    mark_downloaded: bool = typer.Option(
        False, "--mark-downloaded", "-m", help="Mark downloaded links in (regular) FILE arguments"
    ),
    printf_format: Optional[str] = typer.Option(
        None, "--printf", help="Don't download, print final links with this format"
    ),
    get_module: bool = typer.Option(
        False, "--get-module", help="Don't process links, print module names only"
    ),
    no_extra_wait: bool = typer.Option(
        False, "--no-extra-wait", help="Do not wait on temporarily unavailable links"
    ),
    fallback: bool = typer.Option(
        False, "--fallback", help="If no module is found for a link, simply download it (HTTP GET)"
    ),
    timeout: Optional[int] = TIMEOUT_OPTION,
    max_retries: Optional[int] = MAX_RETRIES_OPTION,
    cookies: Optional[Path] = COOKIES_OPTION,
    auth: Optional[str] = AUTH_OPTION,
    link_password: Optional[str] = LINK_PASSWORD_OPTION,
    captcha_method: Optional[str] = CAPTCHA_METHOD_OPTION,
    captcha_program: Optional[Path] = CAPTCHA_PROGRAM_OPTION,
    antigate: Optional[str] = ANTIGATE_OPTION,
    ninekw: Optional[str] = NINEKW_OPTION,
    captchabhood: Optional[str] = BHOOD_OPTION,
    deathbycaptcha: Optional[str] = DEATHBY_OPTION,
    pixeldrain_api_key: Optional[str] = PIXELDRAIN_OPTION,
    verbose: int = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
) -> None:
    """
    Download files from file sharing servers.

    Example:
        oneclick download https://pixeldrain.com/u/abc123 -o ~/Downloads
    """
    verbosity = _init(verbose, quiet, log_file)

    config = ToolkitConfig(
        timeout=timeout,
        max_retries=max_retries,
        no_extra_wait=no_extra_wait,
        captcha_method=captcha_method,
        captcha_program=captcha_program,
        captcha=CaptchaCredentials(
            antigate=antigate,
            ninekw=ninekw,
            brotherhood=captchabhood,
            deathbycaptcha=deathbycaptcha,
        ),
        fallback=fallback,
        cookies_file=cookies,
        output_dir=output_directory,
        temp_dir=temp_directory,
        no_overwrite=no_overwrite,
        check_link=check_link,
        mark_downloaded=mark_downloaded,
        printf_format=printf_format,
        link_password=link_password,
        auth=auth,
        pixeldrain_api_key=pixeldrain_api_key,
    )
    _prepare(config)

    if printf_format:
        try:
            check_format(printf_format)
        except HosterError as e:
            raise _fail(e)

    show_progress = (
        verbosity > 0
        and err_console.is_terminal
        and not (check_link or printf_format or get_module)
    )

    registry = default_registry(pixeldrain_api_key)
    ladder = RetryLadder(config, console=err_console)

    try:
        if show_progress:
            with _new_progress() as progress:
                runner = BatchRunner(config, registry, ladder=ladder, progress=progress)
                result = runner.download(items, get_module=get_module)
        else:
            runner = BatchRunner(config, registry, ladder=ladder)
            result = runner.download(items, get_module=get_module)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted by user.[/yellow]")
        raise typer.Exit(130)

    _finish(result)


@app.command()
def probe(
    items: List[str] = typer.Argument(..., help="URLs or files of links"),
    printf_format: Optional[str] = typer.Option(
        None, "--printf", help="Print results in a given format (default: %F%u)"
    ),
    timeout: Optional[int] = TIMEOUT_OPTION,
    cookies: Optional[Path] = COOKIES_OPTION,
    auth: Optional[str] = AUTH_OPTION,
    link_password: Optional[str] = LINK_PASSWORD_OPTION,
    pixeldrain_api_key: Optional[str] = PIXELDRAIN_OPTION,
    verbose: int = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
) -> None:
    """
    Retrieve metadata (name, size, hash) of alive links.

    Format sequences: %c status, %f filename, %F "# %f%n", %h hash,
    %m module, %s size, %u URL, %n newline, %t tab, %% percent.
    """
    _init(verbose, quiet, log_file)

    config = ToolkitConfig(
        timeout=timeout,
        cookies_file=cookies,
        link_password=link_password,
        auth=auth,
        pixeldrain_api_key=pixeldrain_api_key,
    )
    _prepare(config)

    runner = BatchRunner(config, default_registry(pixeldrain_api_key))
    try:
        result = runner.probe(items, printf_format)
    except HosterError as e:
        raise _fail(e)

    _finish(result)


@app.command("list")
def list_links(
    items: List[str] = typer.Argument(..., help="Folder URLs or files of links"),
    printf_format: Optional[str] = typer.Option(
        None, "--printf", help="Print results in a given format (default: %F%u)"
    ),
    recursive: bool = typer.Option(
        False, "--recursive", "-R", help="Recurse into sub folders"
    ),
    fallback: bool = typer.Option(
        False, "--fallback", help="If no module is found, list the links of the web page"
    ),
    cookies: Optional[Path] = COOKIES_OPTION,
    auth: Optional[str] = AUTH_OPTION,
    link_password: Optional[str] = LINK_PASSWORD_OPTION,
    pixeldrain_api_key: Optional[str] = PIXELDRAIN_OPTION,
    verbose: int = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
) -> None:
    """
    List links contained in shared folders.

    Format sequences: %f name, %F "# %f%n", %m module, %u URL,
    %n newline, %t tab, %% percent.
    """
    _init(verbose, quiet, log_file)

    config = ToolkitConfig(
        fallback=fallback,
        cookies_file=cookies,
        link_password=link_password,
        auth=auth,
        pixeldrain_api_key=pixeldrain_api_key,
        recurse=recursive,
    )
    _prepare(config)

    runner = BatchRunner(config, default_registry(pixeldrain_api_key))
    try:
        result = runner.list(items, printf_format)
    except HosterError as e:
        raise _fail(e)

    _finish(result)


@app.command()
def delete(
    urls: List[str] = typer.Argument(..., help="Delete (or admin) links"),
    cookies: Optional[Path] = COOKIES_OPTION,
    auth: Optional[str] = AUTH_OPTION,
    pixeldrain_api_key: Optional[str] = PIXELDRAIN_OPTION,
    verbose: int = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
) -> None:
    """
    Delete files from file sharing servers.
    """
    _init(verbose, quiet, log_file)

    config = ToolkitConfig(cookies_file=cookies, auth=auth, pixeldrain_api_key=pixeldrain_api_key)
    _prepare(config)

    runner = BatchRunner(config, default_registry(pixeldrain_api_key))
    _finish(runner.delete(urls))


@app.command()
def upload(
    module: str = typer.Argument(..., help="Module name (see 'oneclick modules')"),
    files: List[Path] = typer.Argument(..., help="Local files to upload"),
    remote_name: Optional[str] = typer.Option(
        None, "--name", help="Remote filename (single file only)"
    ),
    timeout: Optional[int] = TIMEOUT_OPTION,
    cookies: Optional[Path] = COOKIES_OPTION,
    auth: Optional[str] = AUTH_OPTION,
    link_password: Optional[str] = LINK_PASSWORD_OPTION,
    pixeldrain_api_key: Optional[str] = PIXELDRAIN_OPTION,
    verbose: int = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
    log_file: Optional[Path] = LOG_FILE_OPTION,
) -> None:
    """
    Upload files to a file sharing server.

    Example:
        oneclick upload pixeldrain ./archive.zip --pixeldrain-api-key KEY
    """
    _init(verbose, quiet, log_file)

    config = ToolkitConfig(
        timeout=timeout,
        cookies_file=cookies,
        link_password=link_password,
        auth=auth,
        pixeldrain_api_key=pixeldrain_api_key,
    )
    _prepare(config)

    runner = BatchRunner(config, default_registry(pixeldrain_api_key))
    try:
        result = runner.upload(module, files, remote_name)
    except HosterError as e:
        raise _fail(e)

    _finish(result)


@app.command()
def modules() -> None:
    """
    Show available site modules and the operations they support.
    """
    registry = default_registry()

    table = Table(title="Site Modules")
    table.add_column("Module", style="cyan")
    for operation in OPERATIONS:
        table.add_column(operation.capitalize(), justify="center")
    table.add_column("Resume", justify="center")

    for module in registry:
        table.add_row(
            module.name,
            *("[green]yes[/green]" if module.supports(op) else "-" for op in OPERATIONS),
            "yes" if module.resumable else "no",
        )

    console.print(table)


@app.command()
def check() -> None:
    """
    Check system dependencies and configuration.

    Verifies:
    - Python version
    - Required packages
    - Captcha image viewers and tesseract
    - Captcha service credentials and API keys
    """
    table = Table(title="System Check")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Details")

    all_ok = True

    # Python version
    py_version = sys.version_info
    py_ok = py_version >= (3, 9)
    table.add_row(
        "Python",
        "[green]OK[/green]" if py_ok else "[red]FAIL[/red]",
        f"{py_version.major}.{py_version.minor}.{py_version.micro}",
    )
    if not py_ok:
        all_ok = False

    # Required packages
    packages = {"requests": "requests", "typer": "typer", "rich": "rich", "python-dotenv": "dotenv"}
    for pkg, module_name in packages.items():
        try:
            __import__(module_name)
            table.add_row(f"Package: {pkg}", "[green]OK[/green]", "Installed")
        except ImportError:
            table.add_row(f"Package: {pkg}", "[red]FAIL[/red]", "Not installed")
            all_ok = False

    # Captcha image viewers
    names = [name for name, _ in X11_VIEWERS] + list(ASCII_VIEWERS)
    viewers = [name for name in names if shutil.which(name)]
    if viewers:
        table.add_row("Image viewers", "[green]OK[/green]", ", ".join(viewers))
    else:
        table.add_row(
            "Image viewers",
            "[yellow]WARN[/yellow]",
            "None found - captcha images are only saved to disk",
        )

    tesseract_path = shutil.which("tesseract")
    if tesseract_path:
        table.add_row("tesseract", "[green]OK[/green]", tesseract_path)
    else:
        table.add_row("tesseract", "[yellow]WARN[/yellow]", "Not found - OCR captcha method won't work")

    # Environment variables
    credentials = {
        "CAPTCHA_ANTIGATE": mask_sensitive_data,
        "CAPTCHA_9KWEU": mask_sensitive_data,
        "CAPTCHA_BHOOD": mask_account,
        "CAPTCHA_DEATHBY": mask_account,
        "PIXELDRAIN_API_KEY": mask_sensitive_data,
    }
    for name, mask in credentials.items():
        value = os.environ.get(name)
        if value:
            table.add_row(name, "[green]OK[/green]", f"Set ({mask(value)})")
        else:
            table.add_row(name, "[dim]-[/dim]", "Not set")

    console.print(table)

    if all_ok:
        console.print("\n[bold green]All checks passed![/bold green]")
    else:
        console.print("\n[bold yellow]Some checks failed or have warnings.[/bold yellow]")
        console.print("See details above for more information.")
        raise typer.Exit(int(ErrorKind.SYSTEM))


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
