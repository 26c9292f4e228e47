"""Tests for new-note title templates."""
from datetime import datetime, timedelta

import pytest

from notekanban.template import TemplateDate, TemplateRenderer, parse_duration


def _render(template):
    return TemplateRenderer(template, clock=lambda: datetime(2025, 1, 31)).render()


class TestToday:

    def test_default_format(self):
        """Test today() renders with the default format"""
        assert _render("<%= today() %>") == "2025-01-31"

    def test_custom_format(self):
        """Test a custom date format"""
        assert _render('<%= today().format("MM/dd") %>') == "01/31"

    def test_add_day(self):
        """Test adding a day"""
        assert _render('<%= today().add("1d").format("yyyy-MM-dd") %>') == "2025-02-01"

    def test_add_hour(self):
        """Test adding an hour"""
        assert _render('<%= today().add("1h").format("HH:mm") %>') == "01:00"

    def test_negative_delta(self):
        """Test a negative offset"""
        assert _render('<%= today().add("-1d") %>') == "2025-01-30"


class TestRendering:

    def test_static_text(self):
        """Test text without tags renders unchanged"""
        assert _render("New Task") == "New Task"

    def test_text_with_date(self):
        """Test text around a date tag"""
        assert _render('New Task <%= today().add("1d").format("MM/dd") %>') == "New Task 02/01"

    def test_multiple_expressions(self):
        """Test several tags in one template"""
        template = '[<%= today() %>] Task due <%= today().add("7d").format("MM/dd") %>'
        assert _render(template) == "[2025-01-31] Task due 02/07"

    def test_extra_data(self):
        """Test extra template variables"""
        renderer = TemplateRenderer("<%= who %> on <%= today() %>", data={"who": "Ann"},
                                    clock=lambda: datetime(2025, 1, 31))
        assert renderer.render() == "Ann on 2025-01-31"

    def test_unescaped_output_tag(self):
        """<%- renders its expression the same way <%= does"""
        assert _render('Due <%- today().add("1d").format("MM/dd") %>') == "Due 02/01"

    def test_whitespace_slurping_tags(self):
        """<%_ and _%> strip the whitespace around the tag"""
        assert _render("Task   <%_ if true _%>   now<%_ endif _%>") == "Tasknow"

    def test_syntax_error_becomes_text(self):
        """Test a syntax error is returned as text"""
        result = _render("<%= invalid syntax %>")
        assert result.startswith("TemplateSyntaxError:")

    def test_bad_duration_becomes_text(self):
        """Test a bad duration is returned as text"""
        assert _render('<%= today().add("invalid") %>') == \
            "ValueError: Unknown duration argument 'invalid'"

    def test_undefined_name_becomes_text(self):
        """Test an undefined name is returned as text"""
        assert _render("<%= nothing %>").startswith("UndefinedError:")

    def test_sandboxed(self):
        """Test templates cannot reach Python internals"""
        assert _render("<%= today().__class__ %>").startswith("SecurityError:")


class TestParseDuration:

    @pytest.mark.parametrize("text,expected", [
        ("1d", timedelta(days=1)),
        ("-1h", timedelta(hours=-1)),
        ("90", timedelta(milliseconds=90)),
        ("2 hours", timedelta(hours=2)),
        ("30m", timedelta(minutes=30)),
        ("15 mins", timedelta(minutes=15)),
        ("500ms", timedelta(milliseconds=500)),
        ("1w", timedelta(weeks=1)),
        ("1.5s", timedelta(seconds=1.5)),
    ])
    def test_units(self, text, expected):
        """Test duration units"""
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "1 fortnight", "d1"])
    def test_invalid(self, text):
        """Test invalid durations raise ValueError"""
        with pytest.raises(ValueError):
            parse_duration(text)


def test_template_date_chains():
    """Test add and format chain on the same date"""
    date = TemplateDate(datetime(2025, 1, 31))
    assert str(date.add("1d").add("1d").format("dd.MM.yyyy")) == "02.02.2025"
