from kagami.agent.prompts.loader import PromptContext, PromptTemplate, PromptTemplateError

__all__ = ["PromptContext", "PromptTemplate", "PromptTemplateError"]
