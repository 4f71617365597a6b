import json
from typing import Dict, List


CLASS_SUMMARY_SYSTEM_PROMPT = (
    "You are a senior software engineer documenting a code base. "
    "You will receive a JSON object with the current description of a class "
    "and the descriptions of its functions. Write a concise description of "
    "what the class is responsible for. Answer with the description only."
)

PATH_SUMMARY_SYSTEM_PROMPT = (
    "You are a senior software engineer documenting a code base. "
    "You will receive the descriptions of the sub folders and classes of a "
    "folder. Write a short description of the folder's functionality. "
    "Answer with the description only."
)

PATH_SUMMARY_INSTRUCTION = "Please summarize the folder's functionality. And please keep it as simple as possible."


def compose_class_prompt(description: str, functions: Dict[str, str]) -> str:
    """Class description plus its function descriptions, as pretty-printed JSON."""
    return json.dumps({"description": description, "Functions": functions}, indent=2)


def sub_path_line(full_path: str, description: str) -> str:
    return f"Sub path {full_path}: {description}"


def sub_class_line(full_class_name: str, description: str) -> str:
    return f"Sub class {full_class_name}: {description}"


def compose_path_prompt(full_path: str, child_lines: List[str]) -> str:
    """One line per summarized child, in child order, followed by the instruction."""
    lines = [f"This is a folder named {full_path}, below are the sub paths and classes' descriptions:"]
    lines.extend(child_lines)
    lines.append(PATH_SUMMARY_INSTRUCTION)
    return "\n".join(lines) + "\n"
