import asyncio
import functools
import json
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import yaml

from stagecore.config.base import configure_logging
from stagecore.config.manager import ConfigurationManager
from stagecore.providers.enums import CapabilityTag
from stagecore.providers.errors import ProviderRegistryError
from stagecore.providers.models import UNSET, EffectiveConfig


def coro(f):
    """Turn an async function into a regular function."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def mask_secret(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return f"****{value[-4:]}" if len(value) > 8 else "****"


def parse_assignments(values: Tuple[str, ...]) -> Dict[str, Any]:
    """Parse KEY=VALUE options, reading each value as YAML so numbers and booleans keep their type."""
    parsed: Dict[str, Any] = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{item}'")
        key, raw = item.split("=", 1)
        parsed[key.strip()] = yaml.safe_load(raw) if raw else None
    return parsed


def parse_settings(values: Tuple[str, ...]) -> Dict[str, Dict[str, Any]]:
    """Parse CAPABILITY.FIELD=VALUE options into capability settings."""
    settings: Dict[str, Dict[str, Any]] = {}
    for key, value in parse_assignments(values).items():
        if "." not in key:
            raise click.BadParameter(f"Expected CAPABILITY.FIELD=VALUE, got '{key}'")
        capability, field = key.split(".", 1)
        try:
            tag = CapabilityTag.from_name(capability)
        except ValueError as e:
            raise click.BadParameter(str(e))
        settings.setdefault(tag.value, {})[field] = value
    return settings


def effective_to_dict(effective: EffectiveConfig) -> Dict[str, Any]:
    data = effective.canonical()
    if effective.api_key is not UNSET:
        data["api_key"] = mask_secret(effective.api_key)
    return data


def get_manager(ctx: click.Context) -> ConfigurationManager:
    return ctx.obj["manager"]


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="System configuration file")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str]):
    """stagecore CLI - Configure and try out AI service providers"""
    if config_path:
        manager = ConfigurationManager.from_yaml_files(config_path)
    else:
        manager = ConfigurationManager.from_env()
    configure_logging(manager.system_config.logging)
    ctx.obj = {"manager": manager}


@cli.command()
@click.option("--capability", type=click.Choice([tag.value for tag in CapabilityTag]), help="Only providers with this capability")
@click.pass_context
def providers(ctx: click.Context, capability: Optional[str]):
    """List available providers"""
    manager = get_manager(ctx)
    locale = manager.system_config.default_locale
    for descriptor in manager.list_descriptors(capability):
        status = "configured" if manager.is_configured(descriptor.id) else "not configured"
        capabilities = ", ".join(sorted(str(tag) for tag in descriptor.capabilities))
        click.echo(f"{descriptor.id:<12} {descriptor.display_name(locale):<14} [{capabilities}] ({status})")


@cli.group()
def config():
    """Manage provider configuration"""
    pass


@config.command()
@click.argument("provider")
@click.option("--effective", is_flag=True, help="Show the resolved configuration instead of the stored one")
@click.pass_context
def show(ctx: click.Context, provider: str, effective: bool):
    """Show the configuration of a provider"""
    manager = get_manager(ctx)
    try:
        if effective:
            data = effective_to_dict(manager.get_effective_config(provider))
        else:
            stored = manager.get_config(provider)
            data = stored.to_record() if stored else {}
            if "api_key" in data:
                data["api_key"] = mask_secret(data["api_key"])
    except ProviderRegistryError as e:
        raise click.ClickException(str(e))
    click.echo(yaml.safe_dump(data, sort_keys=True).rstrip())


@config.command(name="set")
@click.argument("provider")
@click.option("--api-key", help="API key")
@click.option("--base-url", help="Endpoint override")
@click.option("--extra", multiple=True, help="Other credential field, as KEY=VALUE")
@click.option("--setting", multiple=True, help="Capability setting, as CAPABILITY.FIELD=VALUE")
@click.pass_context
def set_config(
    ctx: click.Context,
    provider: str,
    api_key: Optional[str],
    base_url: Optional[str],
    extra: Tuple[str, ...],
    setting: Tuple[str, ...],
):
    """Set configuration values of a provider"""
    manager = get_manager(ctx)
    partial: Dict[str, Any] = {}
    if api_key is not None:
        partial["api_key"] = api_key
    if base_url is not None:
        partial["base_url"] = base_url
    if extra:
        partial["extra"] = parse_assignments(extra)
    if setting:
        partial["capability_settings"] = parse_settings(setting)
    if not partial:
        raise click.UsageError("Nothing to set")

    try:
        manager.update_config(provider, partial)
    except ProviderRegistryError as e:
        raise click.ClickException(str(e))
    click.echo(f"Updated {provider}")


@config.command()
@click.argument("provider")
@click.option("--credentials", is_flag=True, help="Also remove the API key and endpoint override")
@click.pass_context
def reset(ctx: click.Context, provider: str, credentials: bool):
    """Restore default settings of a provider"""
    manager = get_manager(ctx)
    try:
        manager.reset_config(provider, include_credentials=credentials)
    except ProviderRegistryError as e:
        raise click.ClickException(str(e))
    click.echo(f"Reset {provider}")


@cli.command()
@click.argument("provider")
@click.argument("content")
@click.option("--set", "overrides", multiple=True, help="Request setting, as KEY=VALUE")
@click.pass_context
@coro
async def chat(ctx: click.Context, provider: str, content: str, overrides: Tuple[str, ...]):
    """Stream a chat reply from a provider"""
    manager = get_manager(ctx)
    args = {**parse_assignments(overrides), "content": content}
    try:
        async for delta in manager.stream(provider, args):
            click.echo(delta, nl=False)
        click.echo()
    except ProviderRegistryError as e:
        raise click.ClickException(str(e))
    finally:
        await manager.aclose()


@cli.command()
@click.argument("provider")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
@coro
async def models(ctx: click.Context, provider: str, as_json: bool):
    """List the models offered by a provider"""
    manager = get_manager(ctx)
    try:
        result = await manager.invoke(provider, CapabilityTag.MODELS)
    except ProviderRegistryError as e:
        raise click.ClickException(str(e))
    finally:
        await manager.aclose()

    if as_json:
        click.echo(json.dumps([model.model_dump() for model in result], indent=2))
    else:
        for model in result:
            click.echo(model.id)


@cli.command()
@click.argument("provider")
@click.argument("text")
@click.option("--output", "-o", type=click.Path(dir_okay=False), required=True, help="Where to write the audio")
@click.option("--set", "overrides", multiple=True, help="Request setting, as KEY=VALUE")
@click.pass_context
@coro
async def speak(ctx: click.Context, provider: str, text: str, output: str, overrides: Tuple[str, ...]):
    """Synthesize speech with a provider"""
    manager = get_manager(ctx)
    args = {**parse_assignments(overrides), "text": text}
    try:
        async with manager.speech_file(provider, args) as path:
            shutil.copyfile(path, output)
    except ProviderRegistryError as e:
        raise click.ClickException(str(e))
    finally:
        await manager.aclose()
    click.echo(f"Wrote {Path(output).stat().st_size} bytes to {output}")


if __name__ == "__main__":
    cli()
