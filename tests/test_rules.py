"""Tests for protection rules."""

import json
import tempfile
from pathlib import Path

import pytest

from trackdeleter.models import Track
from trackdeleter.rules import Rule, RuleCondition, RuleEngine


def track_fields(**overrides) -> dict:
    track = Track(
        path=Path("/music/backup/song.mp3"),
        title="Song",
        artist="Artist",
        album="Album",
        duration=200.0,
        format="mp3",
        size=5_000_000,
        sample_rate=44100,
        bitrate=128,
    )
    fields = track.rule_fields()
    fields.update(overrides)
    return fields


class TestRuleCondition:
    """Test RuleCondition evaluation."""

    def test_equality_operator(self) -> None:
        """Test == operator."""
        cond = RuleCondition(field="format", operator="==", value="mp3")
        assert cond.evaluate({"format": "mp3"}) is True
        assert cond.evaluate({"format": "flac"}) is False

    def test_inequality_operator(self) -> None:
        """Test != operator."""
        cond = RuleCondition(field="format", operator="!=", value="mp3")
        assert cond.evaluate({"format": "flac"}) is True
        assert cond.evaluate({"format": "mp3"}) is False

    def test_comparison_operators(self) -> None:
        """Test <, >, <= and >= operators."""
        assert RuleCondition("bitrate", "<", 192).evaluate({"bitrate": 128}) is True
        assert RuleCondition("bitrate", ">", 192).evaluate({"bitrate": 128}) is False
        assert RuleCondition("bitrate", "<=", 128).evaluate({"bitrate": 128}) is True
        assert RuleCondition("bitrate", ">=", 320).evaluate({"bitrate": 256}) is False

    def test_comparison_with_unknown_value(self) -> None:
        """Test that an unknown bitrate never satisfies a comparison."""
        cond = RuleCondition(field="bitrate", operator="<", value=192)
        assert cond.evaluate({"bitrate": None}) is False

    def test_comparison_type_mismatch(self) -> None:
        """Test that incomparable types do not raise."""
        cond = RuleCondition(field="title", operator="<", value=5)
        assert cond.evaluate({"title": "Song"}) is False

    def test_contains_operator(self) -> None:
        """Test contains operator."""
        cond = RuleCondition(field="path", operator="contains", value="/backup/")
        assert cond.evaluate({"path": "/music/backup/file.mp3"}) is True
        assert cond.evaluate({"path": "/music/main/file.mp3"}) is False

    def test_matches_operator(self) -> None:
        """Test regex matches operator."""
        cond = RuleCondition(field="filename", operator="matches", value=r"\(live\)")
        assert cond.evaluate({"filename": "Song (live).mp3"}) is True
        assert cond.evaluate({"filename": "Song.mp3"}) is False

    def test_in_operators(self) -> None:
        """Test in and not in operators."""
        cond = RuleCondition(field="format", operator="in", value=["flac", "wav"])
        assert cond.evaluate({"format": "flac"}) is True
        assert cond.evaluate({"format": "mp3"}) is False

        cond = RuleCondition(field="format", operator="not in", value=["flac"])
        assert cond.evaluate({"format": "mp3"}) is True

    def test_missing_field(self) -> None:
        """Test evaluation with missing field returns False."""
        cond = RuleCondition(field="nonexistent", operator="==", value="test")
        assert cond.evaluate({"format": "mp3"}) is False


class TestRule:
    """Test Rule evaluation with multiple conditions."""

    def test_and_logic(self) -> None:
        """Test AND logic requires every condition."""
        rule = Rule(
            name="Low quality MP3s",
            action="delete",
            logic="AND",
            conditions=[
                RuleCondition(field="format", operator="==", value="mp3"),
                RuleCondition(field="bitrate", operator="<", value=192),
            ],
        )
        assert rule.evaluate({"format": "mp3", "bitrate": 128}) is True
        assert rule.evaluate({"format": "mp3", "bitrate": 320}) is False
        assert rule.evaluate({"format": "flac", "bitrate": 128}) is False

    def test_or_logic(self) -> None:
        """Test OR logic with multiple conditions."""
        rule = Rule(
            name="MP3 or M4A",
            action="delete",
            logic="OR",
            conditions=[
                RuleCondition(field="format", operator="==", value="mp3"),
                RuleCondition(field="format", operator="==", value="m4a"),
            ],
        )
        assert rule.evaluate({"format": "mp3"}) is True
        assert rule.evaluate({"format": "m4a"}) is True
        assert rule.evaluate({"format": "flac"}) is False

    def test_empty_conditions(self) -> None:
        """Test rule with no conditions returns False."""
        rule = Rule(name="Empty", action="keep", conditions=[])
        assert rule.evaluate({"format": "mp3"}) is False


class TestRuleEngine:
    """Test RuleEngine evaluation and priority handling."""

    def test_no_rules_deletes(self) -> None:
        """Test that an empty engine protects nothing."""
        engine = RuleEngine()
        assert engine.match(track_fields()) is None
        assert engine.evaluate(track_fields()) == "delete"

    def test_priority_ordering(self) -> None:
        """Test that higher priority rules are evaluated first."""
        engine = RuleEngine(default_action="delete")
        engine.add_rule(
            Rule(
                name="Delete all mp3",
                action="delete",
                priority=10,
                conditions=[RuleCondition(field="format", operator="==", value="mp3")],
            )
        )
        engine.add_rule(
            Rule(
                name="Keep backups",
                action="keep",
                priority=100,
                conditions=[
                    RuleCondition(field="path", operator="contains", value="/backup/")
                ],
            )
        )

        rule = engine.match(track_fields())
        assert rule is not None
        assert rule.name == "Keep backups"
        assert engine.evaluate(track_fields(path="/music/a.mp3")) == "delete"

    def test_default_keep(self) -> None:
        """Test default action keep yields a synthetic matching rule."""
        engine = RuleEngine(default_action="keep")
        rule = engine.match(track_fields())
        assert rule is not None
        assert rule.action == "keep"
        assert rule.name == "default"

    def test_invalid_action(self) -> None:
        """Test that unknown rule actions are rejected."""
        with pytest.raises(ValueError, match="Invalid rule action"):
            RuleEngine().add_rule(Rule(name="x", action="archive"))  # type: ignore

    def test_strategy_eliminate_duplicates(self) -> None:
        """Test eliminate-duplicates protects nothing."""
        engine = RuleEngine.get_strategy("eliminate-duplicates")
        assert engine.evaluate(track_fields()) == "delete"
        assert engine.evaluate(track_fields(format="flac")) == "delete"

    def test_strategy_keep_lossless(self) -> None:
        """Test keep-lossless strategy."""
        engine = RuleEngine.get_strategy("keep-lossless")
        assert engine.evaluate(track_fields(format="flac")) == "keep"
        assert engine.evaluate(track_fields(format="mp3")) == "delete"

    def test_strategy_keep_format(self) -> None:
        """Test keep-format strategy normalizes the format."""
        engine = RuleEngine.get_strategy("keep-format", format_param=".M4A")
        assert engine.evaluate(track_fields(format="m4a")) == "keep"
        assert engine.evaluate(track_fields(format="mp3")) == "delete"

    def test_strategy_keep_format_requires_param(self) -> None:
        """Test keep-format strategy requires format parameter."""
        with pytest.raises(ValueError, match="--format required"):
            RuleEngine.get_strategy("keep-format")

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="Unknown strategy"):
            RuleEngine.get_strategy("keep-everything")

    def test_load_from_yaml_config(self) -> None:
        """Test loading rules from YAML config file."""
        yaml_content = """
rules:
  - name: "Keep archive copies"
    action: keep
    priority: 100
    conditions:
      - field: path
        operator: contains
        value: /archive/

  - name: "Delete low bitrate MP3s"
    action: delete
    priority: 50
    logic: AND
    conditions:
      - field: format
        operator: "=="
        value: mp3
      - field: bitrate
        operator: "<"
        value: 192

default_action: keep
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(yaml_content)
            config_path = Path(f.name)

        try:
            engine = RuleEngine.load_from_config(config_path)

            assert engine.evaluate(track_fields(path="/archive/a.mp3")) == "keep"
            assert engine.evaluate(track_fields(bitrate=128)) == "delete"
            assert engine.evaluate(track_fields(bitrate=320)) == "keep"
        finally:
            config_path.unlink()

    def test_load_from_json_config(self) -> None:
        """Test loading rules from JSON config file."""
        config = {
            "rules": [
                {
                    "name": "Keep FLAC",
                    "action": "keep",
                    "conditions": [
                        {"field": "format", "operator": "==", "value": "flac"}
                    ],
                }
            ],
        }

        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(config, f)
            config_path = Path(f.name)

        try:
            engine = RuleEngine.load_from_config(config_path)
            assert engine.evaluate(track_fields(format="flac")) == "keep"
            assert engine.evaluate(track_fields(format="mp3")) == "delete"
        finally:
            config_path.unlink()

    def test_load_invalid_yaml(self) -> None:
        """Test that malformed YAML raises ValueError."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yml", delete=False) as f:
            f.write("rules: [unclosed")
            config_path = Path(f.name)

        try:
            with pytest.raises(ValueError, match="Invalid YAML"):
                RuleEngine.load_from_config(config_path)
        finally:
            config_path.unlink()

    def test_load_unsupported_extension(self) -> None:
        with tempfile.NamedTemporaryFile(mode="w", suffix=".txt", delete=False) as f:
            f.write("rules: []")
            config_path = Path(f.name)

        try:
            with pytest.raises(ValueError, match="Unsupported rules format"):
                RuleEngine.load_from_config(config_path)
        finally:
            config_path.unlink()
