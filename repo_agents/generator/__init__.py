"""
Workflow generators.

Submodules are imported directly (``repo_agents.generator.workflow``,
``repo_agents.generator.dispatcher``) so that importing the IR from the output
handlers does not pull in every generator.
"""
