import asyncio
import logging
import re
import secrets
from pathlib import Path

import click
from pydantic import BaseModel

from crewx.application.config_loader import load_config
from crewx.application.config_models import AgentConfig, CrewxConfig
from crewx.application.parallel_runner import ParallelRequest, ParallelRunner, ParallelSummary
from crewx.application.provider_registry import ProviderRegistry
from crewx.application.tool_registry import create_default_tool_registry
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.providers.provider_behavior import InvocationMode
from crewx.interface.cli.output_models import (
    AgentResult,
    DoctorCheck,
    DoctorOutput,
    ExecuteOutput,
    ProviderSummary,
    ProvidersOutput,
    QueryOutput,
)

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "claude"

# "@agent" at the start of the message or after whitespace (not inside emails)
_MENTION = re.compile(r"(?:(?<=\s)|^)@([A-Za-z0-9_][A-Za-z0-9_.\-]*)")


def _json_emit(model: BaseModel) -> None:
    # Single-line JSON, omit None fields.
    click.echo(model.model_dump_json(exclude_none=True), nl=True)


def _get_json_mode(ctx: click.Context) -> bool:
    obj = ctx.obj or {}
    return bool(obj.get("json", False))


def _format_error(e: Exception) -> str:
    """Format exception into user-friendly message."""
    if isinstance(e, FileNotFoundError):
        return f"File not found: {e.filename}" if e.filename else str(e)
    if isinstance(e, KeyError):
        return f"Missing required field: {e.args[0]}"
    return str(e)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load(ctx: click.Context) -> CrewxConfig:
    obj = ctx.obj or {}
    return load_config(config_path=obj.get("config_path"))


def parse_mentions(message: str) -> tuple[list[str], str]:
    """Split ``@agent`` mentions from the message text.

    Returns:
        (agent ids in first-mention order without duplicates, remaining text)
    """
    agent_ids: list[str] = []
    for agent_id in _MENTION.findall(message):
        if agent_id not in agent_ids:
            agent_ids.append(agent_id)
    text = _MENTION.sub("", message).strip()
    return agent_ids, text


def _parse_provider_option(value: str | None) -> str | list[str] | None:
    if not value:
        return None
    names = [name.strip() for name in value.split(",") if name.strip()]
    if len(names) == 1:
        return names[0]
    return names or None


def _read_piped_stdin() -> str | None:
    stream = click.get_text_stream("stdin")
    if stream.isatty():
        return None
    data = stream.read()
    return data if data.strip() else None


def _resolve_agents(config: CrewxConfig, agent_ids: list[str]) -> list[AgentConfig]:
    agents = config.all_agents()
    unknown = [agent_id for agent_id in agent_ids if agent_id not in agents]
    if unknown:
        available = ", ".join(sorted(agents))
        raise click.ClickException(
            f"Unknown agent(s): {', '.join('@' + a for a in unknown)}. Available: {available}"
        )
    return [agents[agent_id] for agent_id in (agent_ids or [DEFAULT_AGENT])]


def _agent_results(summary: ParallelSummary) -> list[AgentResult]:
    results = []
    for result in summary.results:
        response = result.response
        results.append(
            AgentResult(
                agent_id=result.agent_id,
                provider=result.provider,
                success=response.success,
                content=response.content,
                error=response.error,
                task_id=response.task_id,
                model=response.model,
                duration_ms=result.duration_ms,
                tool_call=response.tool_call.model_dump() if response.tool_call else None,
            )
        )
    return results


def _echo_summary(summary: ParallelSummary, raw: bool) -> None:
    for result in summary.results:
        response = result.response
        if raw:
            if response.success:
                click.echo(response.content)
            else:
                click.echo(response.error, err=True)
            continue

        click.echo(f"=== @{result.agent_id} ({result.provider}) ===")
        if response.success:
            click.echo(response.content)
        else:
            click.echo(f"Error: {response.error}")
        if response.tool_call:
            click.echo(f"[tool: {response.tool_call.tool_name}]")
        click.echo("")

    if not raw and summary.total > 1:
        click.echo(
            f"{summary.succeeded}/{summary.total} agents succeeded in {summary.duration_ms}ms"
        )


def _run_agents(
    ctx: click.Context,
    mode: InvocationMode,
    message: str,
    provider: str | None,
    model: str | None,
    timeout: int | None,
    cwd: Path | None,
    raw: bool,
    config_path: Path | None,
) -> None:
    output_cls = QueryOutput if mode == "query" else ExecuteOutput
    if config_path is not None:
        ctx.ensure_object(dict)["config_path"] = config_path
    try:
        config = _load(ctx)
        agent_ids, text = parse_mentions(message)
        if not text:
            raise click.ClickException("Message is empty")
        agents = _resolve_agents(config, agent_ids)

        registry = ProviderRegistry.from_config(config, tool_registry=create_default_tool_registry())
        options = QueryOptions(
            timeout_ms=timeout,
            working_directory=str(cwd) if cwd else None,
            model=model,
            security_key=secrets.token_hex(8),
            piped_context=_read_piped_stdin(),
        )
        requests = [
            ParallelRequest(
                agent=agent,
                prompt=text,
                mode=mode,
                options=options,
                provider=_parse_provider_option(provider),
            )
            for agent in agents
        ]
        if not raw and not _get_json_mode(ctx):
            names = ", ".join(f"@{agent.id}" for agent in agents)
            click.echo(f"Running {mode} on {names}...", err=True)
        summary = asyncio.run(ParallelRunner(registry).run(requests))
        exit_code = 0 if summary.failed == 0 else 1

        if _get_json_mode(ctx):
            _json_emit(
                output_cls(
                    exit_code=exit_code,
                    results=_agent_results(summary),
                    total=summary.total,
                    succeeded=summary.succeeded,
                    failed=summary.failed,
                    duration_ms=summary.duration_ms,
                )
            )
            raise click.exceptions.Exit(exit_code)

        _echo_summary(summary, raw)
        if exit_code:
            raise click.exceptions.Exit(exit_code)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        error = e.format_message() if isinstance(e, click.ClickException) else _format_error(e)
        if _get_json_mode(ctx):
            _json_emit(output_cls(exit_code=1, error=error))
            raise click.exceptions.Exit(1)
        raise click.ClickException(error)


def _agent_options(func):
    func = click.option("--raw", is_flag=True, help="Print only response content.")(func)
    func = click.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        help="Path to crewx.yaml; overrides the top-level --config.",
    )(func)
    func = click.option(
        "--cwd",
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        help="Working directory for the provider process.",
    )(func)
    func = click.option(
        "--timeout", type=click.IntRange(min=1), help="Timeout in milliseconds."
    )(func)
    func = click.option("--model", type=str, help="Model override for the provider.")(func)
    func = click.option(
        "--provider",
        type=str,
        help="Provider override, e.g. cli/gemini or a comma-separated fallback list.",
    )(func)
    return func


@click.group(help="CrewX: run AI agents through their provider CLIs.")
@click.option("--json", "json_output", is_flag=True, help="Emit machine-readable JSON on stdout.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to crewx.yaml (defaults to CREWX_CONFIG or ./crewx.yaml).",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging on stderr.")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, config_path: Path | None, verbose: bool) -> None:
    ctx.ensure_object(dict)
    ctx.obj["json"] = bool(json_output)
    ctx.obj["config_path"] = config_path
    _setup_logging(verbose)


@cli.command("query")
@click.argument("message", type=str)
@_agent_options
@click.pass_context
def query_cmd(
    ctx: click.Context,
    message: str,
    provider: str | None,
    model: str | None,
    timeout: int | None,
    cwd: Path | None,
    raw: bool,
    config_path: Path | None,
) -> None:
    """Ask one or more @agents a question (read-only)."""
    _run_agents(ctx, "query", message, provider, model, timeout, cwd, raw, config_path)


@cli.command("execute")
@click.argument("message", type=str)
@_agent_options
@click.pass_context
def execute_cmd(
    ctx: click.Context,
    message: str,
    provider: str | None,
    model: str | None,
    timeout: int | None,
    cwd: Path | None,
    raw: bool,
    config_path: Path | None,
) -> None:
    """Have one or more @agents carry out a task (may modify files)."""
    _run_agents(ctx, "execute", message, provider, model, timeout, cwd, raw, config_path)


@cli.command("providers")
@click.option("--check", is_flag=True, help="Check whether each provider is installed or reachable.")
@click.pass_context
def providers_cmd(ctx: click.Context, check: bool) -> None:
    """List registered AI providers."""
    try:
        registry = ProviderRegistry.from_config(_load(ctx))
        availability = asyncio.run(registry.check_availability()) if check else {}

        providers_list = []
        for name in registry.get_available_providers():
            provider = registry.get_provider(name)
            if provider is None:
                continue
            meta = provider.describe()
            providers_list.append(
                ProviderSummary(
                    name=name,
                    description=meta.get("description") or "",
                    cli_command=meta.get("cli_command"),
                    supports_tool_calls=bool(meta.get("supports_tool_calls")),
                    builtin=registry.is_builtin(name),
                    available=availability.get(name) if check else None,
                )
            )

        if _get_json_mode(ctx):
            _json_emit(ProvidersOutput(exit_code=0, providers=providers_list))
            raise click.exceptions.Exit(0)

        if not providers_list:
            click.echo("No providers registered.")
            return
        header = f"{'PROVIDER':<24}{'DESCRIPTION':<50}"
        click.echo(f"{header}STATUS" if check else header.rstrip())
        for p in providers_list:
            line = f"{p.name:<24}{p.description:<50}"
            if check:
                line += "available" if p.available else "unavailable"
            click.echo(line.rstrip())

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(ProvidersOutput(exit_code=1, error=_format_error(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(_format_error(e))


@cli.command("doctor")
@click.pass_context
def doctor_cmd(ctx: click.Context) -> None:
    """Validate configured providers and report availability."""
    try:
        registry = ProviderRegistry.from_config(_load(ctx))
        availability = asyncio.run(registry.check_availability())

        checks = [
            DoctorCheck(
                provider=name,
                builtin=registry.is_builtin(name),
                valid=True,
                available=available,
            )
            for name, available in availability.items()
        ]
        checks.extend(
            DoctorCheck(provider=label, builtin=False, valid=False, error=error)
            for label, error in registry.load_errors.items()
        )
        all_passed = not registry.load_errors
        exit_code = 0 if all_passed else 1

        if _get_json_mode(ctx):
            _json_emit(DoctorOutput(exit_code=exit_code, checks=checks, all_passed=all_passed))
            raise click.exceptions.Exit(exit_code)

        for c in checks:
            if not c.valid:
                click.echo(f"[FAIL] {c.provider}: {c.error}")
            elif c.available:
                click.echo(f"[OK]   {c.provider}")
            else:
                click.echo(f"[--]   {c.provider}: not available")

        click.echo("")
        if all_passed:
            click.echo("All provider configurations are valid.")
        else:
            click.echo(f"{len(registry.load_errors)} provider configuration(s) rejected.")
            raise click.exceptions.Exit(1)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(DoctorOutput(exit_code=1, all_passed=False, error=_format_error(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(_format_error(e))


if __name__ == "__main__":
    cli()
