"""설정, DI 컨테이너, Kafka 브로커"""

from src.conf.container import Container, create_container
from src.conf.kafka import broker, ensure_topics
from src.conf.settings import AppSettings, settings

__all__ = ["AppSettings", "Container", "broker", "create_container", "ensure_topics", "settings"]
