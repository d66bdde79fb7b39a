# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Expressions - command templates and run conditions.

Templates use GitHub Actions style delimiters:

    make build VERSION=${{ inputs.version }} TAG=${{ steps.meta.outputs.tag }}

Conditions are bare Jinja expressions evaluated to a boolean:

    inputs.publish and steps.build.outputs.image != ''
    failure() or inputs.force

Both see two namespaces:
- inputs: the validated input mapping
- steps: the step's dependencies only, each {status, outcome, outputs}

Conditions may also call success(), failure() and always(). A condition that
calls failure() or always() tolerates failed or skipped dependencies.
"""

from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set

from jinja2 import ChainableUndefined, TemplateSyntaxError, nodes
from jinja2.sandbox import SandboxedEnvironment


FAILURE_TOLERANT_FUNCTIONS = ("failure", "always")


class ExpressionError(Exception):
    """Raised when a template or condition cannot be parsed or evaluated."""
    pass


def _finalize(value: Any) -> Any:
    """Render None as empty and booleans the way shells expect them."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _make_environment() -> SandboxedEnvironment:
    # Block and comment delimiters are moved so shell text such as ${#array[@]}
    # or {{ literal }} passes through untouched.
    return SandboxedEnvironment(
        variable_start_string="${{",
        variable_end_string="}}",
        block_start_string="${%",
        block_end_string="%}",
        comment_start_string="${/*",
        comment_end_string="*/}",
        autoescape=False,
        keep_trailing_newline=True,
        undefined=ChainableUndefined,
        finalize=_finalize,
    )


_ENV = _make_environment()


# =============================================================================
# Static analysis
# =============================================================================

def _parse_template(source: str) -> nodes.Template:
    try:
        return _ENV.parse(source)
    except TemplateSyntaxError as e:
        raise ExpressionError(f"Invalid template {source!r}: {e.message}")


def _parse_expression(expression: str) -> nodes.Template:
    try:
        return _ENV.parse("${{ " + expression + " }}")
    except TemplateSyntaxError as e:
        raise ExpressionError(f"Invalid condition {expression!r}: {e.message}")


def _steps_read(tree: nodes.Template) -> Set[str]:
    """Collect step names read through steps.<name> or steps['<name>']."""
    names = set()
    for node in tree.find_all(nodes.Getattr):
        if isinstance(node.node, nodes.Name) and node.node.name == "steps":
            names.add(node.attr)
    for node in tree.find_all(nodes.Getitem):
        if (
            isinstance(node.node, nodes.Name)
            and node.node.name == "steps"
            and isinstance(node.arg, nodes.Const)
        ):
            names.add(str(node.arg.value))
    return names


def check_template(source: str) -> None:
    """Raise ExpressionError if source is not a valid template."""
    _parse_template(source)


def check_condition(expression: str) -> None:
    """Raise ExpressionError if expression is not a valid condition."""
    _parse_expression(expression)


def template_reads_steps(source: str) -> Set[str]:
    """Names of steps whose outputs a template reads."""
    return _steps_read(_parse_template(source))


def condition_reads_steps(expression: str) -> Set[str]:
    """Names of steps a condition reads."""
    return _steps_read(_parse_expression(expression))


def tolerates_failure(expression: str) -> bool:
    """
    Whether a condition explicitly runs after failed or skipped dependencies.

    True when the expression calls failure() or always().
    """
    tree = _parse_expression(expression)
    for call in tree.find_all(nodes.Call):
        if isinstance(call.node, nodes.Name) and call.node.name in FAILURE_TOLERANT_FUNCTIONS:
            return True
    return False


# =============================================================================
# Evaluation
# =============================================================================

def status_functions(
    dependency_statuses: Iterable[str],
    upstream_statuses: Optional[Iterable[str]] = None,
) -> Dict[str, Callable[[], bool]]:
    """
    Build success()/failure()/always() for one step.

    success(): every direct dependency succeeded (true when there are none)
    failure(): at least one upstream step failed, however far back; a
        dependency skipped because of that failure does not hide it
    always(): true

    upstream_statuses defaults to dependency_statuses.
    """
    statuses = list(dependency_statuses)
    upstream = statuses if upstream_statuses is None else list(upstream_statuses)

    def success() -> bool:
        return all(status == "succeeded" for status in statuses)

    def failure() -> bool:
        return any(status == "failed" for status in upstream)

    def always() -> bool:
        return True

    return {"success": success, "failure": failure, "always": always}


def evaluate_condition(expression: str, context: Mapping[str, Any]) -> bool:
    """
    Evaluate a run condition.

    Args:
        expression: Jinja expression, e.g. "success() and inputs.publish"
        context: Namespaces (inputs, steps) and status functions

    Returns:
        Truthiness of the expression result

    Raises:
        ExpressionError: If the expression is invalid or fails to evaluate
    """
    try:
        compiled = _ENV.compile_expression(expression, undefined_to_none=True)
        return bool(compiled(**context))
    except Exception as e:
        # Sandbox limits, arithmetic and lookup errors all fail the step
        raise ExpressionError(f"Cannot evaluate condition {expression!r}: {type(e).__name__}: {e}")


def render_template(source: str, context: Mapping[str, Any]) -> str:
    """
    Render a command or env template.

    Missing values (e.g. outputs of a skipped dependency) render empty.

    Raises:
        ExpressionError: If the template is invalid or fails to render
    """
    try:
        return _ENV.from_string(source).render(**context)
    except Exception as e:
        raise ExpressionError(f"Cannot render template {source!r}: {type(e).__name__}: {e}")
