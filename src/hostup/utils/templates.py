# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostup/utils/templates.py

from __future__ import annotations

from typing import Any, Mapping

from jinja2 import DictLoader, Environment, StrictUndefined


class TemplateRenderer:
    """
    Renders named in-package templates. Shell text passes through untouched,
    so ${VAR} references survive into the generated script.
    """

    def __init__(self, templates: Mapping[str, str]):
        self.env = Environment(
            loader=DictLoader(dict(templates)),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**context)
