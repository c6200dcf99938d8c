"""Switchboard CLI entry point."""

from __future__ import annotations

import asyncio
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .config import ConfigLoader, ModelConfig, load_model_config
from .errors import LLMException
from .models import (
    Content,
    CountTokensRequest,
    EmbedContentRequest,
    GenerateContentConfig,
    GenerateContentRequest,
    GenerateContentResponse,
    Role,
    create_content_generator,
)
from .utils.logger import configure_logging

console = Console()


def _load(ctx: click.Context) -> ModelConfig:
    loader: ConfigLoader = ctx.obj["loader"]
    return load_model_config(loader)


def _fail(ctx: click.Context, exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {exc}", highlight=False)
    ctx.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Log level (debug, info, warning, error).")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str]) -> None:
    """Switchboard - one content-generation interface, many LLM backends."""
    try:
        loader = ConfigLoader()
    except PermissionError as exc:
        _fail(ctx, exc)
        return
    configure_logging(
        level=log_level or loader.get("general.log_level", "warning"),
        log_file=loader.get("general.log_file") or None,
        json_format=loader.get("general.log_format", "text") == "json",
    )
    ctx.ensure_object(dict)
    ctx.obj["loader"] = loader


@main.command()
@click.argument("prompt")
@click.option("--stream/--no-stream", default=True, help="Stream partial output as it arrives.")
@click.option("--think", is_flag=True, help="Ask for (and show) the model's reasoning.")
@click.option("--model", default=None, help="Override the configured model.")
@click.pass_context
def chat(ctx: click.Context, prompt: str, stream: bool, think: bool, model: Optional[str]) -> None:
    """Send PROMPT as a single user message."""
    request = GenerateContentRequest(
        contents=(Content.from_text(Role.USER, prompt),),
        config=GenerateContentConfig(include_thoughts=think),
        model=model,
    )
    try:
        generator = create_content_generator(_load(ctx))
        if stream:
            asyncio.run(_stream_chat(generator, request, think))
        else:
            _print_response(asyncio.run(generator.generate_content(request)), think)
    except LLMException as exc:
        _fail(ctx, exc)


async def _stream_chat(generator, request: GenerateContentRequest, show_thinking: bool) -> None:
    async for partial in generator.generate_content_stream(request):
        if show_thinking and partial.thinking:
            console.print(partial.thinking, style="dim", end="", highlight=False)
        if partial.text:
            console.print(partial.text, end="", highlight=False)
    console.print()


def _print_response(response: GenerateContentResponse, show_thinking: bool) -> None:
    if show_thinking and response.thinking:
        console.print(response.thinking, style="dim", highlight=False)
    if response.text:
        console.print(response.text, highlight=False)
    for call in response.function_calls:
        console.print(f"[cyan]tool call[/cyan] {call.name}({call.args})", highlight=False)


@main.command("count-tokens")
@click.argument("prompt")
@click.pass_context
def count_tokens(ctx: click.Context, prompt: str) -> None:
    """Print the token count for PROMPT."""
    request = CountTokensRequest(contents=(Content.from_text(Role.USER, prompt),))
    try:
        generator = create_content_generator(_load(ctx))
        click.echo(asyncio.run(generator.count_tokens(request)))
    except LLMException as exc:
        _fail(ctx, exc)


@main.command()
@click.argument("texts", nargs=-1, required=True)
@click.pass_context
def embed(ctx: click.Context, texts: tuple) -> None:
    """Embed each TEXT and print the vector dimensions."""
    try:
        generator = create_content_generator(_load(ctx))
        response = asyncio.run(generator.embed_content(EmbedContentRequest(contents=tuple(texts))))
    except LLMException as exc:
        _fail(ctx, exc)
        return
    for text, vector in zip(texts, response.embeddings):
        click.echo(f"{len(vector)}\t{text}")


@main.command()
@click.option("--init", is_flag=True, help="Write a default config.toml if none exists.")
@click.pass_context
def config(ctx: click.Context, init: bool) -> None:
    """Show the resolved backend (the API key is never printed)."""
    loader: ConfigLoader = ctx.obj["loader"]
    if init:
        click.echo(f"Config: {loader.write_default_config()}")
    try:
        resolved = _load(ctx)
    except LLMException as exc:
        _fail(ctx, exc)
        return
    click.echo(f"provider: {resolved.provider.value}")
    click.echo(f"model: {resolved.model}")
    click.echo(f"base_url: {resolved.base_url or '-'}")
    click.echo(f"embedding_model: {resolved.embedding_model or '-'}")
    click.echo(f"think_support: {str(resolved.think_support).lower()}")
    click.echo(f"api_key: {'set' if resolved.api_key else 'missing'}")


if __name__ == "__main__":
    main()
