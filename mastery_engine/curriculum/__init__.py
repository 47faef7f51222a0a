"""
Curriculum skill catalogue
"""
from .registry import SkillDefinition, SkillRegistry, default_phonics_registry

__all__ = ["SkillDefinition", "SkillRegistry", "default_phonics_registry"]
