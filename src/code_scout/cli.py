"""code-scout CLI entry point."""

import functools
import logging
import sys
from pathlib import Path
from typing import Any, Callable

import click
import litellm

from code_scout import __version__
from code_scout.config import build_config
from code_scout.core.transport import StreamingTransport
from code_scout.errors import ScoutError
from code_scout.prompts import EXPLAIN_DETAILS, SUMMARY_DEPTHS, SUMMARY_FOCUS
from code_scout.renderer import Renderer
from code_scout.session import AnalysisResult, AnalysisSession

litellm.suppress_debug_info = True

_log = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        # LiteLLM is noisy at INFO.
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every analysis command."""

    @click.option("--workspace", "-w", type=click.Path(file_okay=False, path_type=Path), default=None,
                  help="Workspace root the tools may read (default: current directory)")
    @click.option("--model", default=None, help="Override LLM model (e.g., gemini/gemini-2.0-flash)")
    @click.option("--api-base", default=None, help="Override LiteLLM API base URL")
    @click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
                  help="Config file (default: ~/.code-scout/config.yaml)")
    @click.option("--timeout", type=float, default=None, help="Analysis timeout in seconds")
    @click.option("--show-thoughts", is_flag=True, help="Print reasoning summaries when the model emits them")
    @click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
    @functools.wraps(func)
    def wrapper(**kwargs: Any) -> Any:
        return func(**kwargs)

    return wrapper


def _execute(options: dict, task: Callable[[AnalysisSession, Renderer], AnalysisResult]) -> None:
    """Build config and session, run task, render the footer. Exits 1 on errors."""
    _setup_logging(options["verbose"])
    renderer = Renderer(show_thoughts=options["show_thoughts"])
    try:
        config = build_config(
            options["config_path"],
            model=options["model"],
            api_base=options["api_base"],
            workspace_root=options["workspace"],
            timeout_seconds=options["timeout"],
        )
        _log.debug("Using %r", config)
        with AnalysisSession(config) as session:
            result = task(session, renderer)
    except ScoutError as e:
        renderer.print_error(f"Error: {e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        renderer.print_warning("\nInterrupted.")
        sys.exit(130)

    renderer.render_summary(result)


def _analyze_kwargs(renderer: Renderer) -> dict:
    return {"on_event": renderer.render_event, "on_tool_result": renderer.render_tool_result}


@click.group()
@click.version_option(__version__, prog_name="code-scout")
def main() -> None:
    """Read-only, tool-using LLM analysis of a local codebase."""


@main.command()
@click.option("--model", default=None, help="Override LLM model")
@click.option("--api-base", default=None, help="Override LiteLLM API base URL")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Config file (default: ~/.code-scout/config.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def check(model: str | None, api_base: str | None, config_path: Path | None, verbose: bool) -> None:
    """Verify the configured model is reachable."""
    _setup_logging(verbose)
    renderer = Renderer()
    try:
        config = build_config(config_path, model=model, api_base=api_base)
        transport = StreamingTransport(config)
        try:
            transport.verify_connection()
        finally:
            transport.close()
    except ScoutError as e:
        renderer.print_error(f"Error: {e.message}")
        sys.exit(1)
    renderer.print_info(f"Connected to {config.model} ({config.api_base or 'provider default'})")


@main.command()
@click.argument("prompt")
@click.option("--file", "-f", "files", multiple=True, help="Workspace file to point the model at (repeatable)")
@click.option("--context", "context_file", type=click.File("r"), default=None,
              help="File whose text is included verbatim as additional context ('-' for stdin)")
@common_options
def analyze(prompt: str, files: tuple, context_file: Any, **options: Any) -> None:
    """Answer PROMPT about the workspace."""
    context = context_file.read() if context_file is not None else None
    _execute(
        options,
        lambda session, renderer: session.analyze(
            prompt, files=list(files) or None, additional_context=context, **_analyze_kwargs(renderer)
        ),
    )


@main.command()
@click.argument("file")
@click.option("--detail", type=click.Choice(EXPLAIN_DETAILS), default="detailed", show_default=True)
@click.option("--lines", default=None, metavar="START-END", help="Restrict the explanation to a line range")
@common_options
def explain(file: str, detail: str, lines: str | None, **options: Any) -> None:
    """Explain the code in FILE."""
    start = end = None
    if lines:
        try:
            start, end = (int(part) for part in lines.split("-", 1))
        except ValueError:
            raise click.BadParameter("expected START-END, e.g. 10-40", param_hint="--lines") from None
    _execute(
        options,
        lambda session, renderer: session.explain_code(
            file, detail, start, end, **_analyze_kwargs(renderer)
        ),
    )


@main.command()
@click.option("--depth", type=click.Choice(SUMMARY_DEPTHS), default="moderate", show_default=True)
@click.option("--focus", type=click.Choice(SUMMARY_FOCUS), multiple=True,
              help="Area to emphasise (repeatable; default: architecture, patterns)")
@click.option("--no-metrics", is_flag=True, help="Do not ask for code metrics")
@common_options
def summarize(depth: str, focus: tuple, no_metrics: bool, **options: Any) -> None:
    """Summarize the workspace codebase."""
    _execute(
        options,
        lambda session, renderer: session.summarize_codebase(
            depth, focus or ("architecture", "patterns"), not no_metrics, **_analyze_kwargs(renderer)
        ),
    )


@main.command("ci-failure")
@click.option("--log-file", default=None, help="Workspace path of the CI log (read by the model)")
@click.option("--log", "log_input", type=click.File("r"), default=None,
              help="CI log whose text is included verbatim ('-' for stdin)")
@click.option("--build-command", default=None, help="The command that failed")
@click.option("--context-file", "context_files", multiple=True, help="Related workspace file (repeatable)")
@common_options
def ci_failure(log_file: str | None, log_input: Any, build_command: str | None, context_files: tuple,
               **options: Any) -> None:
    """Find the root cause of a CI failure."""
    log_content = log_input.read() if log_input is not None else None
    _execute(
        options,
        lambda session, renderer: session.analyze_ci_failure(
            log_file=log_file,
            log_content=log_content,
            build_command=build_command,
            context_files=list(context_files),
            **_analyze_kwargs(renderer),
        ),
    )


@main.command()
@click.argument("base_branch")
@click.option("--head", "head_branch", default="HEAD", show_default=True)
@click.option("--diff", "diff_input", type=click.File("r"), default=None,
              help="Unified diff of the change ('-' for stdin), e.g. from git diff")
@click.option("--focus", multiple=True, help="Review focus area (repeatable; default: bugs, security, performance)")
@click.option("--json", "as_json", is_flag=True, help="Ask for structured JSON output")
@common_options
def review(base_branch: str, head_branch: str, diff_input: Any, focus: tuple, as_json: bool,
           **options: Any) -> None:
    """Review the changes between BASE_BRANCH and --head."""
    diff = diff_input.read() if diff_input is not None else None
    _execute(
        options,
        lambda session, renderer: session.review_changes(
            base_branch,
            head_branch,
            focus or ("bugs", "security", "performance"),
            "json" if as_json else "markdown",
            diff=diff,
            **_analyze_kwargs(renderer),
        ),
    )


if __name__ == "__main__":
    main()
