"""Construction of live participant instances."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from market_simulator.agents.local import LocalAgent
from market_simulator.agents.oracle import OracleAgent
from market_simulator.errors import ParticipantNotFoundError

if TYPE_CHECKING:
    from market_simulator.agents.base import BaseParticipantAgent
    from market_simulator.agents.protocol import AgentServices
    from market_simulator.llm.protocol import LLMClientProtocol
    from market_simulator.persistence.models import ParticipantRecord

logger = logging.getLogger(__name__)

AgentMode = Literal["llm", "local"]


class AgentFactory:
    """Builds oracle-backed or local agents; the kind is fixed at construction.

    Args:
        services: Collaborators handed to every instance
        mode: "llm" for OracleAgent, "local" for LocalAgent
        llm_client: Required when mode is "llm"
    """

    def __init__(
        self,
        services: AgentServices,
        mode: AgentMode = "local",
        llm_client: LLMClientProtocol | None = None,
    ) -> None:
        if mode == "llm" and llm_client is None:
            raise ValueError("llm mode requires an llm_client")
        self._services = services
        self._mode = mode
        self._llm_client = llm_client

    @property
    def mode(self) -> AgentMode:
        return self._mode

    def create(self, record: ParticipantRecord) -> BaseParticipantAgent:
        if self._mode == "llm":
            return OracleAgent(record, self._services, self._llm_client)  # type: ignore[arg-type]
        return LocalAgent(record, self._services)

    async def load(self, participant_id: str) -> BaseParticipantAgent:
        """Load a participant's durable record and build a live instance.

        Raises:
            ParticipantNotFoundError: If the participant does not exist
        """
        record = self._services.store.get_participant(participant_id)
        if record is None:
            raise ParticipantNotFoundError(participant_id)
        logger.debug("Creating %s agent for %s", self._mode, participant_id)
        return self.create(record)
