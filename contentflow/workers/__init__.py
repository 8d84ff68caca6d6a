"""Stream consumer workers."""

from contentflow.workers.consumer import ContentStreamConsumer

__all__ = ["ContentStreamConsumer"]
