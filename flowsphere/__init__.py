"""FlowSphere - Email classification, retention and triage assistant"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports keep `import flowsphere` free of FastAPI/Google client loading
def __getattr__(name: str):
    """
    Lazy imports to avoid loading heavy dependencies when only importing lightweight modules.
    """
    if name in ("Email", "EmailCategory", "EmailClassification", "EmailAccount"):
        from flowsphere.storage import models

        return getattr(models, name)

    if name == "EmailDatabase":
        from flowsphere.storage.email_database import EmailDatabase

        return EmailDatabase

    if name == "EmailAIClassifier":
        from flowsphere.classification.classifier import EmailAIClassifier

        return EmailAIClassifier

    if name == "ClassificationRulesStore":
        from flowsphere.classification.rules_store import ClassificationRulesStore

        return ClassificationRulesStore

    if name == "EmailMonitor":
        from flowsphere.monitor.email_monitor import EmailMonitor

        return EmailMonitor

    if name == "EmailAssistant":
        from flowsphere.assistant.email_assistant import EmailAssistant

        return EmailAssistant

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "ClassificationRulesStore",
    "Email",
    "EmailAIClassifier",
    "EmailAccount",
    "EmailAssistant",
    "EmailCategory",
    "EmailClassification",
    "EmailDatabase",
    "EmailMonitor",
]
