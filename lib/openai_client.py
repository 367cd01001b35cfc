from openai import OpenAI
from typing import Optional
from lib.error_handler import AppError

class OpenAIClient:
    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: Optional[OpenAI] = None):
        self.model = model
        self.client = client or OpenAI(api_key=api_key)

    def complete(self, system_prompt: str, user_message: str, temperature: float = 0.2) -> str:
        """
        Run one chat completion and return the stripped text
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message}
                ],
                temperature=temperature
            )
        except Exception as e:
            raise AppError(f"Completion failed: {str(e)}", status_code=502)

        if not response.choices or not response.choices[0].message.content:
            raise AppError("Completion returned no content", status_code=502)

        return response.choices[0].message.content.strip()
