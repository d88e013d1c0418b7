"""Agents package: prompt-building agents for the search pipeline."""

from agents.base_agent import BaseAgent
from agents.author_agent import AuthorAgent
from agents.book_agent import BookAgent
from agents.classifier_agent import ClassifierAgent

__all__ = [
    "BaseAgent",
    "AuthorAgent",
    "BookAgent",
    "ClassifierAgent",
]
