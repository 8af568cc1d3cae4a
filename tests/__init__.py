"""Test package for the visual working memory trainer.

Core modules are exercised with a fake clock and fixed seeds, so every
trial timeline is reproducible. The pygame shell is smoke-tested with the
SDL dummy drivers; run ``pytest`` from the project root.
"""
