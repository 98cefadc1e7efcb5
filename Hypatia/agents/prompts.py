"""
Prompt construction for every step and agent role.

Structured-output schemas use the Gemini schema dialect (upper-case type
names). Wording is kept short and role-specific; each builder returns
plain text, and `get_prompt_for_step` returns a `StepPrompt` that knows
how to become a `GenerationRequest`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.workflow import generation_options, get_workflow, resolve_fine_tune
from ..context.step_context import StepContext
from ..llm_backends.base import GenerationRequest


# === Schemas ===

RESEARCH_QUESTION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "research_question": {"type": "STRING", "description": "The final, refined research question."},
        "uniqueness_score": {
            "type": "NUMBER",
            "description": "A score from 0.0 to 1.0 indicating the novelty of the research question.",
        },
        "justification": {"type": "STRING", "description": "A brief justification for the assigned uniqueness score."},
    },
    "required": ["research_question", "uniqueness_score", "justification"],
}

LITERATURE_REVIEW_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "summary": {"type": "STRING", "description": "A comprehensive summary of the literature review in Markdown."},
        "references": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": {"type": "STRING"},
                    "authors": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "year": {"type": "NUMBER"},
                    "journal": {"type": "STRING"},
                    "url": {"type": "STRING"},
                },
                "required": ["title", "authors", "year"],
            },
        },
    },
    "required": ["summary", "references"],
}

CRITIC_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "approved": {"type": "BOOLEAN", "description": "True when the review needs no further revision."},
        "feedback": {"type": "STRING", "description": "Concrete, actionable revision requests."},
    },
    "required": ["approved", "feedback"],
}

VISUALIZATION_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "charts": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "chartType": {"type": "STRING", "enum": ["bar", "line", "scatter"]},
                    "goal": {"type": "STRING", "description": "What the chart should show."},
                    "columns": {"type": "ARRAY", "items": {"type": "STRING"}},
                },
                "required": ["chartType", "goal", "columns"],
            },
        },
    },
    "required": ["charts"],
}

CHART_JS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "type": {"type": "STRING", "enum": ["bar", "line", "scatter"]},
        "data": {
            "type": "OBJECT",
            "properties": {
                "labels": {"type": "ARRAY", "items": {"type": "STRING"}},
                "datasets": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "label": {"type": "STRING"},
                            "data": {"type": "ARRAY", "items": {"type": "NUMBER"}},
                        },
                    },
                },
            },
        },
        "options": {"type": "OBJECT", "properties": {"title": {"type": "STRING"}}},
    },
    "required": ["type", "data"],
}

OUTLINE_SCHEMA = {"type": "ARRAY", "items": {"type": "STRING"}}

GOOGLE_SEARCH_TOOL = {"google_search": {}}

SUMMARY_PROMPT = "Concisely summarize the following text in 1-2 sentences for a project log:\n\n{text}"

# Post-completion companion documents
COMPANION_KINDS = ("checklist", "presentation", "explainer")


# === Step prompts ===

@dataclass
class StepPrompt:
    """A prompt plus the config needed to send it."""
    step: int
    prompt: str
    expect_json: bool = False
    system_instruction: Optional[str] = None
    response_schema: Optional[dict[str, Any]] = None
    tools: list[dict[str, Any]] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)

    def to_request(self, model: Optional[str] = None) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            system_instruction=self.system_instruction,
            response_schema=self.response_schema,
            response_mime_type="application/json" if self.expect_json else None,
            tools=list(self.tools),
            model=model,
            **self.options,
        )


def system_instruction(experiment_field: str, settings: Optional[dict[str, Any]] = None) -> str:
    text = (
        f"You are an expert AI research assistant specializing in {experiment_field or 'General Science'}. "
        "You are a helpful, creative, and brilliant research assistant."
    )
    persona = (settings or {}).get("reviewerPersona")
    if persona:
        text += f" You must adopt the persona of a '{persona}' peer reviewer."
    return text


def _preferences(step: int, resolved: dict[str, Any]) -> str:
    """Render the step-specific fine-tune values as prompt guidance."""
    lines = []
    for param in get_workflow().tuning_parameters.get(step, []):
        lines.append(f"- {param.label}: {resolved.get(param.name, param.default)}")
    if not lines:
        return ""
    return "\n\nFollow these preferences:\n" + "\n".join(lines)


def get_prompt_for_step(
    step: int,
    user_input: str,
    context: StepContext,
    settings: Optional[dict[str, Any]] = None,
    feedback: str = "",
) -> StepPrompt:
    """
    Build the prompt and config for a workflow step.

    Fine-tune settings are resolved against their declared defaults; the
    sampling options go into the request and the step-specific options
    are rendered into the prompt.
    """
    resolved = resolve_fine_tune(step, settings)
    result = StepPrompt(
        step=step,
        prompt="",
        system_instruction=system_instruction(context.experiment_field, resolved if step == 9 else None),
        options=generation_options(step, settings),
    )

    prefix = ""
    if feedback:
        prefix = (
            f'Please regenerate the response. The user provided the following feedback: "{feedback}". '
            "Please incorporate this feedback to improve the result.\n\n"
        )

    if step == 1:
        result.expect_json = True
        result.response_schema = RESEARCH_QUESTION_SCHEMA
        body = (
            "Refine the following research idea into a clear, focused, and testable research question. "
            "Also, provide a uniqueness score (0.0 to 1.0) and a brief justification. "
            f"Idea: {user_input}"
        )
    elif step == 2:
        result.expect_json = True
        result.response_schema = LITERATURE_REVIEW_SCHEMA
        result.tools = [GOOGLE_SEARCH_TOOL]
        body = (
            f'For the research question "{context.get("question")}", conduct a literature review. '
            "Find relevant, recent, and authoritative sources. "
            "Provide a comprehensive summary and a list of structured references."
        )
    elif step == 3:
        body = (
            f'Based on the literature review summary: "{context.get("literature_review_summary")}", '
            f'formulate {resolved.get("hypothesis_count", "3")} distinct hypotheses for the research question: '
            f'"{context.get("question")}"'
        )
    elif step == 4:
        body = (
            f'Design a methodology to test the hypothesis: "{context.get("hypothesis")}". '
            f'The methodology should be a {str(resolved.get("detail_level", "Detailed protocol")).lower()}.'
        )
    elif step == 5:
        body = f'Create a data collection plan for the methodology: "{context.get("methodology_summary")}".'
    elif step == 6:
        body = synthesize_dataset_prompt(context)
    elif step == 7:
        body = f"Analyze the following data: {user_input}"
    elif step == 8:
        body = (
            f'Based on the data analysis summary: "{context.get("analysis_summary")}", draw conclusions '
            f'for the research project. Was the hypothesis "{context.get("hypothesis")}" supported?'
        )
    elif step == 9:
        body = (
            "Act as a peer reviewer. Critically review the entire research project based on this log and "
            f"provide constructive feedback. Your persona is: {resolved.get('reviewerPersona')}.\n\n"
            f"FULL PROJECT LOG:\n{context.project_log or ''}"
        )
    elif step == 10:
        body = (
            "Assemble the entire research project into a publication-ready paper based on this log:\n\n"
            f"{context.project_log or ''}"
        )
    else:
        raise ValueError(f"Unknown workflow step {step}")

    result.prompt = prefix + body + _preferences(step, resolved)
    if user_input and step not in (1, 7):
        result.prompt += f"\n\nAdditional input from the researcher:\n{user_input}"
    return result


def suggest_input_prompt(step: int, context: StepContext, description: str = "") -> str:
    if step == 1:
        return (
            "Suggest a one-paragraph research idea a scientist in the field of "
            f"{context.experiment_field} could refine into a testable question. Starting point: {description}"
        )
    if step == 3:
        return (
            "Suggest, in 2-3 sentences, the angle a researcher should take when formulating hypotheses for: "
            f"\"{context.get('question')}\" given this literature: \"{context.get('literature_review_summary')}\""
        )
    if step == 4:
        return (
            "Suggest, in 2-3 sentences, practical constraints or preferences a researcher should state before "
            f"designing a methodology to test: \"{context.get('hypothesis')}\""
        )
    raise ValueError(f"No input suggestion is available for step {step}")


def companion_prompt(kind: str, context: StepContext) -> str:
    log = context.project_log or ""
    if kind == "checklist":
        return (
            'Based on the completed research paper draft, generate a detailed "Journal Submission Checklist". '
            "Include sections for Manuscript Formatting, Figure & Table Preparation, Author Contributions, "
            "Conflict of Interest Statement, and Cover Letter Key Points. "
            f"The research is in the field of {context.experiment_field}.\n\n{log}"
        )
    if kind == "presentation":
        return (
            "Based on the completed research paper draft, generate a 10-slide presentation outline. For each "
            "slide, provide a title, key bullet points, and a suggestion for a visual aid. "
            f"The research is in the field of {context.experiment_field}.\n\n{log}"
        )
    if kind == "explainer":
        return (
            "You are an expert science communicator. Explain the following research paper in plain English, "
            "suitable for a 12th-grade reading level. Minimize jargon and focus on the key findings and their "
            f"importance.\n\n---\n\n{log}"
        )
    raise ValueError(f"Unknown companion kind '{kind}', expected one of {COMPANION_KINDS}")


# === Step 6: simulation and synthesis ===

def synthesize_dataset_prompt(context: StepContext) -> str:
    return (
        f'Based on the methodology summary: "{context.get("methodology_summary")}" and data plan summary: '
        f'"{context.get("data_collection_plan_summary")}", generate a plausible, estimated, synthetic dataset '
        "in CSV format. Output ONLY a brief, one-sentence summary of what the data represents, then a line "
        "containing only '---', then the CSV data."
    )


def simplifier_prompt(context: StepContext) -> str:
    return f"""You are a research assistant. Simplify a complex research plan into a clear, concise goal for a programmer.

Primary goal: create simple instructions to simulate only the #1 hypothesis. Extract the core intent from the methodology and data plan. Prioritize simplicity and a clear outcome over complex details.

Hypothesis:
{context.get("hypothesis")}

Methodology Summary:
{context.get("methodology_summary")}

Data Collection Plan:
{context.get("data_collection_plan_summary")}

Output: a short, one-paragraph instruction set for the programmer, ending with the exact CSV columns to produce."""


SANDBOX_RULES = """Rules:
1. The code must call `hypatia.finish(csv_data, summary)` exactly once to return its results.
2. The first argument to `hypatia.finish` must be a string in CSV format with a header row.
3. The second argument must be a brief, one-sentence summary string.
4. Only these modules may be imported: math, random, statistics, csv, io, json, itertools, collections, datetime, functools, string, re, decimal, fractions.
5. There is no file, network or console access; use `log(...)` (or print) for progress messages.
6. Output ONLY the raw Python code without any explanations or markdown backticks."""


def coder_prompt(experiment_field: str, instructions: str) -> str:
    return f"""You are an expert in writing simple, error-free Python simulations for scientific research in the field of {experiment_field}.

Your goal: write a straightforward Python simulation based only on the following instructions. The code MUST run successfully. Do not add complexity. Prioritize working code over perfectly simulating every detail.

Instructions:
{instructions}

{SANDBOX_RULES}"""


def debugger_prompt(experiment_field: str, error: str, code: str) -> str:
    return f"""You are a debugger agent specializing in scientific simulations in the field of {experiment_field}. The following Python code failed with the error: "{error}".

The code runs in a sandbox where it must call `hypatia.finish(csv_string, summary_string)` to return a result. Analyze the code and the error and provide a corrected version of the full script.

{SANDBOX_RULES}

---

CODE:
{code}"""


# === Step 7: data analysis ===

def planner_prompt(context: StepContext, csv_header: str, csv_sample: str, settings: dict[str, Any]) -> str:
    return f"""You are a Data Scientist Planner. Create a visualization plan for a dataset.
Rules:
1. Each visualization must use 3 or fewer columns, named exactly as in the CSV header.
2. Suggest 'bar' charts for categorical data or when there are few data points.
3. Suggest 'line' charts for time-series data or continuous data with many points.
4. Suggest 'scatter' plots to show the relationship between two numerical variables.
5. Visualization emphasis (0.2 = minimal, 1.0 = extensive): {settings.get("visualizationEmphasis")}

Dataset Info:
- Research Question: {context.get("question")}
- Hypothesis: {context.get("hypothesis")}
- CSV Header: {csv_header}
- Data Sample:
{csv_sample}

Return a JSON object with a 'charts' array defining 2-3 appropriate visualizations."""


def chart_prompt(plan: Any, csv_data: str, problems: Optional[list[str]] = None) -> str:
    prompt = f"""You are a data preparation specialist. Using the full CSV data, create a valid Chart.js configuration for this chart.
- Chart Goal: {plan.goal}
- Chart Type: {plan.chart_type}
- Columns to use: {", ".join(plan.columns)}

Requirements:
- "type" must be "{plan.chart_type}".
- "data.datasets" must be a non-empty array and every dataset needs a non-empty "data" array.
- For scatter charts every data point must be an object with numeric "x" and "y".
- For bar and line charts "data.labels" must be non-empty and as long as every dataset's "data".

Full CSV Data:
{csv_data}

Respond with ONLY the raw Chart.js JSON object."""
    if problems:
        prompt += "\n\nYour previous attempt was rejected for these reasons:\n" + "\n".join(f"- {p}" for p in problems)
    return prompt


def analysis_synthesis_prompt(
    context: StepContext,
    charts: list[tuple[Any, dict[str, Any]]],
    csv_data: str,
    settings: dict[str, Any],
) -> str:
    base = f"""Write a detailed summary and interpretation of the data analysis findings in Markdown.
- Research Question: {context.get("question")}
- Hypothesis: {context.get("hypothesis")}
- Statistical approach: {settings.get("statisticalApproach")}
- Audience: {settings.get("assumeAudience")}
- Comment on outliers: {"yes" if settings.get("identifyOutliers") else "no"}
"""
    if not charts:
        return base + f"""
No charts could be produced for this dataset. Do not refer to any figures. Instead, give a text-only interpretation of the raw data below.

Raw Data:
{csv_data}"""

    figures = "\n".join(
        f'- Figure {i}: a {plan.chart_type} chart showing {plan.goal} (columns: {", ".join(plan.columns)})'
        for i, (plan, _) in enumerate(charts, start=1)
    )
    return base + f"""
The following figures were produced. Refer to each one by its label ("Figure 1", "Figure 2", ...) where it supports a finding.
{figures}

Raw Data:
{csv_data}"""


# === Draft agents ===

def researcher_prompt(context: StepContext, settings: dict[str, Any]) -> str:
    return (
        f'For the research question "{context.get("question")}", conduct a literature review in the field of '
        f"{context.experiment_field}. Find relevant, recent, and authoritative sources using Google Search. "
        "Provide a comprehensive Markdown summary and a list of structured references."
        + _preferences(2, settings)
        + "\n\nRespond with a JSON object with keys 'summary' and 'references'."
    )


def critic_prompt(context: StepContext, draft: str) -> str:
    return f"""You are a critical senior researcher reviewing a literature review for the question "{context.get("question")}".
Check coverage, recency, balance, and whether the references support the summary.
Approve it only if no substantive revision is needed.

LITERATURE REVIEW (JSON):
{draft}"""


def revision_prompt(context: StepContext, draft: str, feedback: str) -> str:
    return f"""Revise the literature review for the research question "{context.get("question")}" to address the critic's feedback. Use Google Search to find additional sources where needed.

CRITIC FEEDBACK:
{feedback}

CURRENT REVIEW (JSON):
{draft}

Respond with a JSON object with keys 'summary' and 'references'."""


def reviewer_step_prompt(step: int, title: str, content: str, settings: dict[str, Any]) -> str:
    return f"""You are a peer reviewer with the persona of a '{settings.get("reviewerPersona")}'. Focus area: {settings.get("focus_area")}.
Review Step {step} ({title}) of a research project. List its strengths, weaknesses{", and actionable suggestions" if settings.get("actionability") else ""}.

STEP {step} CONTENT:
{content}"""


def review_editor_prompt(project_log: str, notes: list[tuple[int, str]], settings: dict[str, Any]) -> str:
    joined = "\n\n".join(f"### Notes on Step {step}\n{text}" for step, text in notes)
    return f"""You are the handling editor. Compile the reviewer's step-by-step notes into one cohesive peer review of the whole project.
Persona: {settings.get("reviewerPersona")}. Format: {settings.get("reviewFormat")}. Focus: {settings.get("focus_area")}.
Open with an overall assessment and a recommendation (accept, minor revision, major revision, reject).

REVIEWER NOTES:
{joined}

PROJECT LOG:
{project_log}"""


def outline_prompt(project_log: str, max_sections: int) -> str:
    return (
        "You are a scientific editor. Based on the provided research log, create a standard publication outline "
        'as a JSON array of section names (e.g., ["Abstract", "Introduction", "Methodology", "Results", '
        f'"Discussion", "Conclusion", "References"]). Use at most {max_sections} sections.\n\n'
        f"Research Log:\n\n{project_log}"
    )


def writer_prompt(section: str, project_log: str, settings: dict[str, Any]) -> str:
    return f"""You are a scientific writer. Using the full research log, write the "{section}" section of a scientific paper.
Target journal style: {settings.get("targetJournal")}. Voice: {settings.get("authorVoice")}. Abstract length: {settings.get("abstractLength")}.
For the 'Results' section, insert placeholders like [CHART_1: A descriptive caption] where charts should appear. For the 'References' section, format them professionally.

Full Log:

{project_log}"""


def publication_editor_prompt(sections: dict[str, str], settings: dict[str, Any]) -> str:
    keywords = "Add a list of 5-7 keywords after the abstract. " if settings.get("keywords") else ""
    return (
        "You are a final editor. Combine the following sections into a single, cohesive scientific paper in "
        f"Markdown. Add a suitable title, ensure smooth transitions, and check for consistency. {keywords}"
        f"Here are the sections:\n\n{json.dumps(sections, indent=2)}"
    )


def fallback_analysis_prompt(csv_data: str) -> str:
    return (
        "An error occurred while trying to analyze and visualize the following data. Please provide a basic "
        'textual summary of the data. Start the summary by stating: "An error prevented the generation of '
        'visualizations. However, a basic analysis of the data reveals the following:"'
        f"\n\nData:\n{csv_data}"
    )
