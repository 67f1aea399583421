"""
HTMLRenderer - Jinja2-based HTML rendering of attribution reports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from pathcredit.reporting.snapshot import AttributionReport

REPORT_TEMPLATE = "attribution_report"


class HTMLRenderer:
    """
    Render HTML from Jinja2 templates.

    Example:
        renderer = HTMLRenderer()
        html = renderer.render_report(report)
    """

    def __init__(
        self,
        templates_dir: Path | str | None = None,
    ):
        """
        Initialize HTML renderer.

        Args:
            templates_dir: Custom templates directory
        """
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)
        self._env: Environment | None = None

    @property
    def env(self) -> Environment:
        """Lazy initialization of Jinja2 environment."""
        if self._env is None:
            self._env = Environment(
                loader=FileSystemLoader(str(self.templates_dir)),
                autoescape=select_autoescape(["html", "xml", "j2"]),
            )
            self._env.filters["format_currency"] = self._format_currency
            self._env.filters["format_percent"] = self._format_percent
            self._env.filters["format_number"] = self._format_number

        return self._env

    def render(
        self,
        template: str,
        data: dict[str, Any],
    ) -> str:
        """
        Render template to HTML string.

        Args:
            template: Template name (without extension)
            data: Template context data

        Returns:
            Rendered HTML string
        """
        tmpl = self.env.get_template(f"{template}.html.j2")
        return tmpl.render(**data)

    def render_report(self, report: AttributionReport) -> str:
        """Render an attribution report snapshot as a standalone HTML page."""
        return self.render(REPORT_TEMPLATE, {
            "report": report,
            "totals": report.totals,
            "channels": report.channel_breakdown,
            "paths": report.top_paths,
            "roi": report.roi,
        })

    def list_templates(self) -> list[str]:
        """List available templates."""
        return sorted(
            p.name.removesuffix(".html.j2")
            for p in self.templates_dir.glob("*.html.j2")
        )

    @staticmethod
    def _format_currency(value: float | None, symbol: str = "$") -> str:
        """Format number as currency."""
        if value is None:
            return "n/a"
        return f"{symbol}{value:,.2f}"

    @staticmethod
    def _format_percent(value: float | None, decimals: int = 1) -> str:
        """Format a fraction as percentage."""
        if value is None:
            return "n/a"
        return f"{value * 100:.{decimals}f}%"

    @staticmethod
    def _format_number(value: float | None, decimals: int = 0) -> str:
        """Format number with thousands separator."""
        if value is None:
            return "n/a"
        return f"{value:,.{decimals}f}"
