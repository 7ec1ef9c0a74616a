"""Tests for descriptor models and their construction invariants."""

from __future__ import annotations

import pytest

from omgexec.errors import DescriptorError, ValidationError
from omgexec.types import (
    Action,
    Argument,
    ArgumentType,
    ContainerRecord,
    Format,
    FormatMode,
    Http,
    Location,
    Microservice,
    Range,
)


class TestArgumentConstraints:
    @pytest.mark.parametrize(
        "constraints",
        [
            {"pattern": "^a", "enum": ["a"]},
            {"pattern": "^a", "range": Range(0, 1)},
            {"enum": [1], "range": Range(0, 1)},
            {"pattern": "^a", "enum": ["a"], "range": Range(0, 1)},
        ],
    )
    def test_more_than_one_constraint_fails(self, constraints):
        with pytest.raises(DescriptorError, match="only have a pattern, enum, or range"):
            Argument(name="x", **constraints)

    def test_single_constraint_is_fine(self):
        assert Argument(name="x", enum=["a", "b"]).enum == ["a", "b"]

    def test_from_dict_also_enforces(self):
        with pytest.raises(DescriptorError):
            Argument.from_dict("x", {"type": "int", "enum": [1], "range": {"min": 0}})


class TestArgumentFromDict:
    def test_aliases(self):
        arg = Argument.from_dict("x", {"type": "integer", "in": "requestBody", "required": True})
        assert arg.type is ArgumentType.INTEGER
        assert arg.location is Location.BODY
        assert arg.required is True

    def test_range(self):
        arg = Argument.from_dict("x", {"type": "float", "range": {"min": 1, "max": 2.5}})
        assert arg.range == Range(1, 2.5)

    def test_unknown_type(self):
        with pytest.raises(DescriptorError, match="Unknown type `blob`"):
            Argument.from_dict("x", {"type": "blob"})

    def test_unknown_location(self):
        with pytest.raises(DescriptorError, match="Unknown location"):
            Argument.from_dict("x", {"location": "header"})


class TestRange:
    def test_inclusive_bounds(self):
        r = Range(1, 3)
        assert 1 in r
        assert 3 in r
        assert 0 not in r
        assert 3.01 not in r

    def test_open_ended(self):
        assert 10**9 in Range(min=0)
        assert -5 in Range(max=0)

    def test_rejects_non_numbers(self):
        assert "2" not in Range(1, 3)
        assert True not in Range(0, 3)


class TestAction:
    def test_requires_exactly_one_style(self):
        with pytest.raises(DescriptorError):
            Action(name="a")
        with pytest.raises(DescriptorError):
            Action(
                name="a",
                format=Format(command=["echo"]),
                http=Http(method="get", path="/", port=80),
            )

    def test_unknown_event(self):
        action = Action(name="a", format=Format(command=["echo"]))
        with pytest.raises(ValidationError, match="no event `nope`"):
            action.get_event("nope")

    def test_http_method_normalized(self):
        assert Http(method="POST", path="/", port=80).method == "post"  # type: ignore[arg-type]

    def test_http_method_rejected(self):
        with pytest.raises(DescriptorError):
            Http(method="patch", path="/", port=80)  # type: ignore[arg-type]


class TestFormat:
    def test_string_command_split(self):
        fmt = Format.from_dict({"command": "python -m tool"})
        assert fmt.command == ["python", "-m", "tool"]

    def test_mode_inference(self):
        assert Format(command=["say", "{{x}}"]).resolve_mode(True) is FormatMode.TEMPLATE
        assert Format(command=["say"]).resolve_mode(True) is FormatMode.JSON
        assert Format(command=["say"]).resolve_mode(False) is None
        assert Format(command=["say"], mode=FormatMode.FLAGS).resolve_mode(True) is FormatMode.FLAGS


class TestMicroservice:
    def test_from_dict(self):
        m = Microservice.from_dict(
            {
                "actions": {
                    "greet": {
                        "format": {"command": ["greet", "{{name}}"]},
                        "arguments": {"name": {"type": "string", "required": True}},
                        "output": {"type": "string"},
                    },
                    "lookup": {"http": {"method": "get", "path": "/item/{{id}}", "port": 8080}},
                },
                "environment": {"TOKEN": {"type": "string", "required": True}},
                "lifecycle": {"startup": {"command": "python", "args": "server.py --debug"}},
            }
        )
        assert m.get_action("greet").output_type is ArgumentType.STRING
        assert m.get_action("lookup").http.port == 8080
        assert m.environment[0].name == "TOKEN"
        assert m.lifecycle.command == "python"
        assert m.lifecycle.args == ["server.py", "--debug"]

    def test_unknown_action(self):
        with pytest.raises(ValidationError, match="Unknown action `nope`"):
            Microservice().get_action("nope")

    def test_event_ports_are_distinct(self):
        http = {
            "subscribe": {"method": "post", "path": "/s"},
            "unsubscribe": {"method": "post", "path": "/u"},
        }
        m = Microservice.from_dict(
            {
                "actions": {
                    "a": {"events": {"e1": {"http": {"port": 5000, **http}}}},
                    "b": {
                        "events": {
                            "e2": {"http": {"port": 5000, **http}},
                            "e3": {"http": {"port": 6000, **http}},
                        }
                    },
                }
            }
        )
        assert m.event_ports == [5000, 6000]


class TestContainerRecord:
    def test_ports_keys_become_strings_on_disk(self):
        record = ContainerRecord("abc", {5000: 4444})
        assert record.to_dict() == {"container_id": "abc", "ports": {"5000": 4444}}
        assert ContainerRecord.from_dict(record.to_dict()) == record
