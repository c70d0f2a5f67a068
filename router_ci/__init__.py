"""
Script: router_ci package
What: Holds the Python workflow helpers for building and publishing the router image.
Doing: Groups CLI entrypoints, tag resolution, stage declarations and shared utility code.
Why: Keeps build logic readable and testable instead of spreading it across shell, Makefile and YAML.
Goal: Provide one maintainable home for image tag, build and push logic.
"""
