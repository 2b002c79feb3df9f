"""Prompt template resolution: variable validation, placeholder substitution, request assembly."""

import re
from dataclasses import dataclass

from generative.core.exceptions import GenerativeError, GenerativeErrorCode
from generative.schemas.generate import GenerateOverrides, GenerateRequest
from generative.schemas.templates import PromptTemplate, TemplateVariable

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.9

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


@dataclass
class ResolvedTemplate:
    request: GenerateRequest
    config_template: str | None = None


def _validation_error(
    message: str, template_id: str, variable: str, cause: BaseException | None = None
) -> GenerativeError:
    return GenerativeError(
        message,
        GenerativeErrorCode.VALIDATION_FAILED,
        cause=cause,
        context={"template_id": template_id, "variable": variable},
    )


def _check_variable(template_id: str, variable: TemplateVariable, value: str) -> None:
    rules = variable.validation
    if rules is None:
        return
    if rules.min_length is not None and len(value) < rules.min_length:
        raise _validation_error(
            f"Variable '{variable.name}' must be at least {rules.min_length} characters",
            template_id,
            variable.name,
        )
    if rules.max_length is not None and len(value) > rules.max_length:
        raise _validation_error(
            f"Variable '{variable.name}' cannot exceed {rules.max_length} characters",
            template_id,
            variable.name,
        )
    if rules.pattern is None:
        return
    try:
        matched = re.search(rules.pattern, value)
    except re.error as e:
        raise _validation_error(
            f"Variable '{variable.name}' has an invalid validation pattern",
            template_id,
            variable.name,
            cause=e,
        ) from e
    if matched is None:
        raise _validation_error(
            f"Variable '{variable.name}' does not match required pattern",
            template_id,
            variable.name,
        )


def validate_variables(template: PromptTemplate, variables: dict[str, str]) -> dict[str, str]:
    """Check ``variables`` against the template's declarations, in declaration order.

    Returns a new mapping with defaults filled in; the caller's dict is not modified.
    Empty strings count as missing.
    """
    resolved = dict(variables)
    for variable in template.variables:
        value = resolved.get(variable.name)
        if not value:
            if variable.required:
                raise _validation_error(
                    f"Missing required variable '{variable.name}'", template.id, variable.name
                )
            if variable.default_value:
                resolved[variable.name] = variable.default_value
            continue
        _check_variable(template.id, variable, value)
    return resolved


def substitute(text: str, variables: dict[str, str]) -> str:
    """Replace ``{{name}}`` placeholders with exact-key matches.

    Unknown placeholders are left as-is. Substituted values are never
    re-scanned, so the result does not depend on variable order.
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        return variables[key] if key in variables else match.group(0)

    return _PLACEHOLDER.sub(_replace, text)


def unresolved_placeholders(text: str) -> list[str]:
    return _PLACEHOLDER.findall(text)


class TemplateResolver:
    def __init__(self, default_model: str):
        self._default_model = default_model

    def resolve(
        self,
        template: PromptTemplate,
        variables: dict[str, str],
        overrides: GenerateOverrides | None = None,
    ) -> ResolvedTemplate:
        final_vars = validate_variables(template, variables)

        prompt = substitute(template.template, final_vars)
        system = substitute(template.system_template, final_vars) if template.system_template else None

        overrides = overrides or GenerateOverrides()
        settings = template.model_settings

        model = overrides.model or (settings.models[0] if settings and settings.models else self._default_model)
        temperature = _first_set(overrides.temperature, settings.temperature if settings else None, DEFAULT_TEMPERATURE)
        top_p = _first_set(overrides.top_p, settings.top_p if settings else None, DEFAULT_TOP_P)

        request = GenerateRequest.model_construct(
            model=model,
            prompt=prompt,
            system=system or None,
            temperature=temperature,
            top_p=top_p,
            context=list(overrides.context or []),
            stream=bool(overrides.stream),
        )
        return ResolvedTemplate(
            request=request,
            config_template=settings.config_template if settings else None,
        )


def _first_set(*values):
    return next(v for v in values if v is not None)
