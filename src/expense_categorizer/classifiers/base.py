from abc import ABC, abstractmethod

from expense_categorizer.models import CategoryPrediction, Correction, Observation


class Classifier(ABC):
    @abstractmethod
    def classify(self, observation: Observation) -> list[CategoryPrediction]:
        """Return every prediction this signal source emits for the observation."""
        pass

    @abstractmethod
    def learn(self, correction: Correction) -> None:
        """Incorporate a user correction."""
        pass
