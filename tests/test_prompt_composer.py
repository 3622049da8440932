"""Tests for the layered system prompt."""

from pathlib import Path

import pytest

from doradobet_agent.agent.prompt_composer import (
    PromptCache,
    PromptComposer,
    PromptConfigurationError,
)
from doradobet_agent.config import settings
from doradobet_agent.core.schema import (
    HistoryTurn,
    Mode,
    ModeDecision,
)


def _write_layers(root: Path, output_format: str = "FORMATO") -> None:
    (root / "ways").mkdir(parents=True)
    (root / "modes").mkdir()
    (root / "persona.md").write_text("PERSONA", encoding="utf-8")
    (root / "ways" / "output_format.md").write_text(output_format, encoding="utf-8")
    (root / "ways" / "memory.md").write_text("MEMORIA", encoding="utf-8")
    (root / "ways" / "tools.md").write_text("HERRAMIENTAS", encoding="utf-8")
    for mode in Mode:
        (root / "modes" / f"{mode.value}.md").write_text(f"CAPA {mode.value}", encoding="utf-8")


def _decision(mode: Mode) -> ModeDecision:
    return ModeDecision(mode=mode, reason="test")


def test_layers_in_order(tmp_path, make_context) -> None:
    """Persona, format, ways, the active mode, then the runtime block."""

    _write_layers(tmp_path)
    composer = PromptComposer(PromptCache(tmp_path))

    prompt = composer.compose(make_context(), _decision(Mode.REACTIVE))

    positions = [prompt.index(marker) for marker in ("PERSONA", "FORMATO", "MEMORIA", "HERRAMIENTAS", "CAPA reactive")]
    assert positions == sorted(positions)
    assert "## MODO ACTIVO: REACTIVE" in prompt
    assert "CAPA onboarding" not in prompt
    assert "CAPA proactive" not in prompt
    assert "`/memories/user-42`" in prompt
    assert "lunes, 19 de octubre de 2026, 09:05 a. m." in prompt
    assert "**Tiene perfil guardado**: Sí" in prompt


def test_runtime_block_without_profile(tmp_path, make_context) -> None:
    """Missing profiles are flagged as onboarding in the runtime block."""

    _write_layers(tmp_path)
    composer = PromptComposer(PromptCache(tmp_path))

    prompt = composer.compose(make_context(has_profile=False), _decision(Mode.ONBOARDING))
    assert "No (modo onboarding)" in prompt
    assert "CAPA onboarding" in prompt


def test_history_is_limited_to_last_turns(tmp_path, make_context) -> None:
    """Only the most recent N history turns are rendered."""

    _write_layers(tmp_path)
    composer = PromptComposer(PromptCache(tmp_path), history_turns=2)
    history = (
        HistoryTurn(role="user", content="uno"),
        HistoryTurn(role="assistant", content="dos"),
        HistoryTurn(role="user", content="tres"),
    )

    prompt = composer.compose(make_context(history=history, agent_name="Dora"), _decision(Mode.REACTIVE))
    assert "## HISTORIAL DE CONVERSACIÓN" in prompt
    assert "uno" not in prompt
    assert "**Dora**: dos" in prompt
    assert "**Usuario**: tres" in prompt


def test_missing_output_format_is_an_error(tmp_path, make_context) -> None:
    """The output format layer is mandatory."""

    _write_layers(tmp_path, output_format="   ")
    composer = PromptComposer(PromptCache(tmp_path))

    with pytest.raises(PromptConfigurationError):
        composer.check()
    with pytest.raises(PromptConfigurationError):
        composer.compose(make_context(), _decision(Mode.REACTIVE))


def test_optional_layers_may_be_missing(tmp_path, make_context) -> None:
    """Persona, ways and mode layers are skipped when absent."""

    (tmp_path / "ways").mkdir()
    (tmp_path / "ways" / "output_format.md").write_text("FORMATO", encoding="utf-8")
    composer = PromptComposer(PromptCache(tmp_path))

    prompt = composer.compose(make_context(), _decision(Mode.PROACTIVE))
    assert "FORMATO" in prompt
    assert "MODO ACTIVO" not in prompt


def test_cache_reads_once_until_cleared(tmp_path) -> None:
    """Files are cached; clearing picks up edits."""

    _write_layers(tmp_path)
    cache = PromptCache(tmp_path)

    assert cache.load("persona.md") == "PERSONA"
    (tmp_path / "persona.md").write_text("NUEVA", encoding="utf-8")
    assert cache.load("persona.md") == "PERSONA"

    assert cache.load("missing.md") == ""
    assert len(cache) == 2
    assert cache.clear() == 2
    assert cache.load("persona.md") == "NUEVA"


def test_packaged_prompts_are_complete(make_context) -> None:
    """The prompts shipped with the package compose for every mode."""

    composer = PromptComposer(PromptCache(settings.PROMPTS_DIR))
    composer.check()
    for mode in Mode:
        prompt = composer.compose(make_context(), _decision(mode))
        assert f"## MODO ACTIVO: {mode.value.upper()}" in prompt
        assert '"type"' in prompt
