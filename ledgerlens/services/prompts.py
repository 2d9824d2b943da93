"""Prompt text sent to the LLM."""

from __future__ import annotations

from ..models import Report
from .sandbox_worker import ALLOWED_MODULES

PROMPT_GUIDANCE = f"""
* Python code (apiCode) to fetch data from the Xero API.
** Only these modules may be imported: {', '.join(sorted(ALLOWED_MODULES))}. No other libraries are available.
** Use the provided fetch() function for every HTTP call. It takes url, method, headers, params, json and data keyword arguments and returns a response with .status, .ok, .text and .json().
** Log with console.log(...). Do not print.
** Do not access attributes whose names start with an underscore.
** Be aware that any dates returned by the Xero API will be in Microsoft JSON Date format (e.g. "/Date(1711929600000+0000)/") so make sure the code can handle this.
** Any time you are calling the Xero Reports/ProfitAndLoss API endpoint, the actual Section Titles will be 'Income' not 'Revenue', 'Less Cost of Sales' not 'Expenses', 'Less Operating Expenses' not 'Expenses'

* React code (renderCode) using ApexCharts to visualize the data.
** Do not include any import statements. React and ReactApexChart are already in scope.

API Code Structure:
```python
def fetch_report_data(context):
    # The context dict contains:
    # - context["auth"]["token"]: The Xero OAuth token (already set up)
    # - context["tenantId"]: The Xero tenant ID for the organization (REQUIRED for all Xero API calls, send it as the Xero-Tenant-Id header)
    # - context["userInfo"]: Information about the current user
    # Return data in this format:
    return {{
        "data": [
            # A list of data objects to be visualized
        ],
        "metadata": {{
            # Optional metadata about the data
            "columns": [],
            "totalCount": 123,
        }},
    }}
```

Render Code Structure:
```jsx
function ReportComponent({{ data, metadata }}) {{
  // Your component code here
  // Use ReactApexChart for visualizations
  return (
    <div>
      {{/* Your visualization here */}}
    </div>
  );
}}
```


Output Format:
IMPORTANT: Your output MUST be a valid JSON object with the following structure:
{{
  "name": "A descriptive name for the report",
  "description": "Brief description of what the report shows",
  "apiCode": "...", // The complete API code as a JSON-escaped string
  "renderCode": "..." // The complete Render code as a JSON-escaped string
}}

Handling Vague Queries:
If the user's query is too vague or lacks necessary information, output ONLY this specific JSON structure:
{{
  "needsMoreInfo": true,
  "name": "Incomplete Report Request",
  "description": "More information is needed",
  "requiredInfo": ["List of required information"]
}}
IMPORTANT: Respond ONLY with the valid JSON object as described. Do not include any introductory text, explanations, or markdown formatting. Ensure all string values within the JSON, especially the code snippets, are properly escaped (e.g., newlines as \\n, quotes as \\", backslashes as \\\\).
"""

GENERATION_INSTRUCTIONS = f"""You are a helpful assistant that generates code to create dashboard reports based on user queries about Xero API data.
Your task is to generate two code snippets:

{PROMPT_GUIDANCE}
"""

MODIFICATION_INSTRUCTIONS = f"""You are a helpful assistant that modifies existing dashboard report code based on user requests.
You will be given the original user query, the current API code, the current render code, and a new user request for modification.
Your task is to update the API code and/or Render code based on the user's request. Keep the overall structure and functionality unless the request specifically asks for major changes.

{PROMPT_GUIDANCE}"""

QUESTION_INSTRUCTIONS = """You are an expert code analyst. You will be given details about a dashboard report, including its original query, API code (fetches data), and render code (displays data). You will also be given a user's question about this report.
Your task is to analyze the provided code and context to answer the user's question accurately and concisely. Explain how the report works or how specific calculations are made based *only* on the provided code. Do not invent information or assume external factors not present in the code. If the code doesn't provide enough information to answer, state that clearly."""


def build_generation_prompt(query: str) -> str:
    return f"{GENERATION_INSTRUCTIONS}\n\nUser Query: {query}"


def build_modification_prompt(report: Report, request_text: str) -> str:
    return f"""{MODIFICATION_INSTRUCTIONS}

Original Query: {report.query}

Current API Code:
```python
{report.api_code}
```

Current Render Code:
```javascript
{report.render_code}
```

User Modification Request: {request_text}"""


def build_question_prompt(report: Report, question_text: str) -> str:
    return f"""{QUESTION_INSTRUCTIONS}

Report Name: {report.name}
Report Description: {report.description}
Original Query: {report.query}

API Code (fetches data):
```python
{report.api_code}
```

Render Code (displays data):
```javascript
{report.render_code}
```

User Question: {question_text}

Answer the user's question based on the provided report details and code:"""


__all__ = [
    "PROMPT_GUIDANCE",
    "build_generation_prompt",
    "build_modification_prompt",
    "build_question_prompt",
]
