from contentgen.models.org import Org
from contentgen.models.prompt import PromptTemplate
from contentgen.models.generation import Generation

__all__ = ["Org", "PromptTemplate", "Generation"]
