"""Tests for handler definition construction and coercion."""

import pytest

from guildkeeper.exceptions import DefinitionInvalidError
from guildkeeper.handlers.definitions import (
    DEFAULT_COOLDOWN_SECONDS,
    CommandDefinition,
    CommandSchema,
    EventDefinition,
    coerce_definition,
    definition_from_mapping,
)


async def _noop(ctx, *args):
    return None


class TestCommandDefinition:

    def test_minimal_command(self):
        cmd = CommandDefinition({"name": "ping", "description": "Ping"}, _noop)
        assert cmd.name == "ping"
        assert cmd.cooldown == DEFAULT_COOLDOWN_SECONDS == 3
        assert cmd.autocomplete is None

    def test_explicit_zero_cooldown_disables_gate(self):
        cmd = CommandDefinition({"name": "ping", "description": "Ping"}, _noop, cooldown=0)
        assert cmd.cooldown == 0

    def test_accepts_schema_instance(self):
        schema = CommandSchema(name="ping", description="Ping")
        cmd = CommandDefinition(schema, _noop, cooldown=1.5)
        assert cmd.schema is schema
        assert cmd.cooldown == 1.5

    @pytest.mark.parametrize("cooldown", [-1, "3", True])
    def test_bad_cooldown_rejected(self, cooldown):
        with pytest.raises(DefinitionInvalidError, match="cooldown"):
            CommandDefinition({"name": "ping", "description": "Ping"}, _noop, cooldown=cooldown)

    def test_missing_execute_rejected(self):
        with pytest.raises(DefinitionInvalidError, match="execute"):
            CommandDefinition({"name": "ping", "description": "Ping"}, None)

    def test_non_callable_autocomplete_rejected(self):
        with pytest.raises(DefinitionInvalidError, match="autocomplete"):
            CommandDefinition({"name": "ping", "description": "Ping"}, _noop, autocomplete="x")

    @pytest.mark.parametrize("schema", [
        {"description": "no name"},
        {"name": "", "description": "empty"},
        {"name": "Bad Name", "description": "spaces and capitals"},
        {"name": "ping"},
    ])
    def test_invalid_schema_rejected(self, schema):
        with pytest.raises(DefinitionInvalidError, match="invalid command schema"):
            CommandDefinition(schema, _noop)

    def test_schema_must_be_mapping(self):
        with pytest.raises(DefinitionInvalidError, match="mapping"):
            CommandDefinition(["ping"], _noop)

    def test_payload_omits_unset_fields(self):
        cmd = CommandDefinition({"name": "ping", "description": "Ping", "contexts": [0]}, _noop)
        payload = cmd.schema.to_payload()
        assert payload == {"name": "ping", "description": "Ping", "options": [], "contexts": [0]}


class TestEventDefinition:

    def test_name_is_normalized(self):
        event = EventDefinition("  Ready ", _noop, once=True)
        assert event.name == "ready"
        assert event.once is True

    def test_once_defaults_false(self):
        assert EventDefinition("message_create", _noop).once is False

    def test_empty_name_rejected(self):
        with pytest.raises(DefinitionInvalidError):
            EventDefinition("  ", _noop)

    def test_identity_equality(self):
        a = EventDefinition("ready", _noop)
        b = EventDefinition("ready", _noop)
        assert a != b
        assert len({a, b}) == 2


class TestCoercion:

    def test_mapping_with_data_becomes_command(self):
        definition = definition_from_mapping({
            "data": {"name": "ping", "description": "Ping"},
            "execute": _noop,
            "cooldown": 10,
        })
        assert isinstance(definition, CommandDefinition)
        assert definition.cooldown == 10

    def test_mapping_with_name_becomes_event(self):
        definition = definition_from_mapping({"name": "ready", "execute": _noop, "once": True})
        assert isinstance(definition, EventDefinition)
        assert definition.once is True

    def test_mapping_without_execute_rejected(self):
        with pytest.raises(DefinitionInvalidError, match="execute"):
            definition_from_mapping({"name": "ready"})

    def test_mapping_with_neither_shape_rejected(self):
        with pytest.raises(DefinitionInvalidError, match="neither"):
            definition_from_mapping({"execute": _noop})

    def test_definitions_pass_through(self):
        event = EventDefinition("ready", _noop)
        assert coerce_definition(event) is event

    def test_none_reports_missing_definition(self):
        with pytest.raises(DefinitionInvalidError, match="no handler definition found"):
            coerce_definition(None)

    def test_arbitrary_object_rejected(self):
        with pytest.raises(DefinitionInvalidError, match="not a handler definition: int"):
            coerce_definition(42)

    def test_exception_candidate_is_wrapped(self):
        with pytest.raises(DefinitionInvalidError, match="ImportError: boom"):
            coerce_definition(ImportError("boom"))
