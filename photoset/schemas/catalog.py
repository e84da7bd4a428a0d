from pydantic import BaseModel, ConfigDict, Field, model_validator


class StyleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    prompt_prefix: str = ""
    prompt_suffix: str = ""
    selected_prompts: tuple[int, ...] = Field(default_factory=tuple)


class PromptCatalog(BaseModel):
    """Immutable prompt catalog: shared ordered prompt list plus per-style selection."""

    model_config = ConfigDict(frozen=True)

    prompts: tuple[str, ...]
    styles: dict[str, StyleConfig]

    @model_validator(mode="after")
    def check_indices(self) -> "PromptCatalog":
        for style_id, style in self.styles.items():
            for index in style.selected_prompts:
                if not 0 <= index < len(self.prompts):
                    raise ValueError(f"style {style_id}: prompt index {index} out of range")
        return self

    def has_style(self, style_id: str) -> bool:
        return style_id in self.styles

    def get_style(self, style_id: str) -> StyleConfig | None:
        return self.styles.get(style_id)

    def style_prompts(self, style_id: str) -> list[str]:
        """Prompts of a style in catalog order; empty for an unknown style."""
        style = self.styles.get(style_id)
        if style is None:
            return []
        return [self.prompts[i] for i in style.selected_prompts]

    def compose(self, style_id: str, prompt: str) -> str:
        """Full provider prompt: style prefix + catalog text + style suffix."""
        style = self.styles.get(style_id)
        if style is None:
            return prompt
        return f"{style.prompt_prefix}{prompt}{style.prompt_suffix}"
