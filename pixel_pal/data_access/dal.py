from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from datetime import date


class DataAccessLayer(ABC):
    """
    Abstract Base Class for a Data Access Layer.
    Defines the contract for all data storage operations, so the engine can
    persist its records and step samples to any backend (JSON, DB, etc.)
    through a consistent interface.
    """

    @abstractmethod
    def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Loads a versioned record stored under a fixed identifier.

        Returns:
            The record dictionary, or None if nothing has been saved yet.
        """
        pass

    @abstractmethod
    def save_record(self, key: str, record: Dict[str, Any]) -> None:
        """Saves (replaces) the record stored under `key`."""
        pass

    @abstractmethod
    def save_daily_summary(self, summary: Dict[str, Any], day: date) -> None:
        """Saves a single day's step summary."""
        pass

    @abstractmethod
    def get_daily_summary(self, target_date: date) -> Optional[Dict[str, Any]]:
        """
        Retrieves the step summary for a specific day.

        Args:
            target_date: The date for which to retrieve the summary.

        Returns:
            A dictionary containing the day's data, or None if not found.
        """
        pass

    @abstractmethod
    def get_historical_data(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """
        Retrieves a range of daily summaries, both ends inclusive.

        Args:
            start_date: The starting date of the range.
            end_date: The ending date of the range.

        Returns:
            A list of daily summary dictionaries.
        """
        pass
