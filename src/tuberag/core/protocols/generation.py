from typing import Protocol, runtime_checkable


@runtime_checkable
class GenerationProvider(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str: ...
