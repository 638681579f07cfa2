"""
PaperTrader – Event Bus (asyncio.Queue fan-out)
================================================
Bus de eventos interno para desacoplar productores (feed, scheduler) del
único consumidor que muta el estado del motor (TradingAgent).

Arquitectura:
  ┌───────────┐
  │  Binance  │──tick / feed_status──▸┌───────────┐
  │  Adapter  │                       │ Event Bus │──▸ TradingAgent (consumer)
  └───────────┘   ┌───────────┐       │ (fan-out) │──▸ Consumer N ...
                  │ Scheduler │─clock▸└───────────┘
                  └───────────┘

UN SOLO ESCRITOR:
- Un consumidor puede suscribirse a varios tópicos y recibe TODOS en la
  misma cola, en orden de publicación. Así los handlers del motor nunca
  se solapan y no se necesitan locks.

CÓMO SE PROTEGE MEMORIA:
- Cada cola tiene un maxsize configurable (default 10,000).
- Si un consumidor es lento y su cola se llena, se descarta el evento MÁS
  ANTIGUO (drop-oldest): el productor nunca se bloquea.

THREAD-SAFETY:
- asyncio.Queue es safe dentro del mismo event loop, que es nuestro caso.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from paper_trader.shared.logging.logger import get_logger

logger = get_logger("event_bus")


@dataclass(frozen=True, slots=True)
class Event:
    """Sobre de un evento publicado."""

    topic: str
    payload: Any


class EventBus:
    """Fan-out event bus basado en asyncio.Queue."""

    def __init__(self, max_queue_size: int = 10_000) -> None:
        self._max_queue_size = max_queue_size
        # topic → lista de (queue, nombre_consumidor)
        self._subscribers: Dict[str, List[Tuple[asyncio.Queue, str]]] = {}
        self._lock = asyncio.Lock()
        self.events_dropped = 0

    async def subscribe(self, consumer_name: str, *topics: str) -> asyncio.Queue:
        """
        Registrar un consumidor en uno o varios tópicos.
        Retorna la Queue exclusiva de ese consumidor (recibe Event).
        """
        async with self._lock:
            queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
            for topic in topics:
                self._subscribers.setdefault(topic, []).append((queue, consumer_name))
            logger.info(
                "Consumidor '%s' suscrito a %s (max_queue=%d)",
                consumer_name,
                list(topics),
                self._max_queue_size,
            )
            return queue

    async def publish(self, topic: str, data: Any) -> None:
        """
        Publicar un evento a todos los suscriptores de un tópico.
        Política drop-oldest si la cola está llena → el productor NUNCA se bloquea.
        """
        event = Event(topic=topic, payload=data)
        for queue, consumer_name in self._subscribers.get(topic, []):
            if queue.full():
                try:
                    queue.get_nowait()
                    self.events_dropped += 1
                    logger.warning(
                        "Cola llena para '%s' en tópico '%s' – evento antiguo descartado",
                        consumer_name,
                        topic,
                    )
                except asyncio.QueueEmpty:
                    pass
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.error(
                    "No se pudo encolar evento para '%s' (tópico '%s')",
                    consumer_name,
                    topic,
                )

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Retirar una cola de todos los tópicos."""
        async with self._lock:
            for topic in list(self._subscribers):
                remaining = [(q, n) for q, n in self._subscribers[topic] if q is not queue]
                if remaining:
                    self._subscribers[topic] = remaining
                else:
                    del self._subscribers[topic]

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscribers.values())
