"""
declarative_policy test suite.

This package contains tests for:
- Condition expressions and the per-context condition cache
- Policy registry validation and the delegation graph
- Ability resolution (precedence, delegation, laziness, errors)
- Authorization contexts
- Metric hooks
- The CI policies (namespace, project, pipeline, build)
"""
