from etlflow.templates.expander import TemplateExpander
from etlflow.templates.registry import TemplateRegistry

__all__ = ["TemplateExpander", "TemplateRegistry"]
