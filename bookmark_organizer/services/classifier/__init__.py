from bookmark_organizer.services.classifier.client import (
    EMPTY_VOCABULARY_MESSAGE,
    ClassifierClient,
    reconcile_destination,
)

__all__ = ["EMPTY_VOCABULARY_MESSAGE", "ClassifierClient", "reconcile_destination"]
