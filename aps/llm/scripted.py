"""Scripted completion client — offline stand-in for the Gemini service.

Picks a canned response by the [PHASE: NAME] tag embedded in each
instruction. The canned Coding output ships one bad named import so an
offline run exercises the whole validate → patch → validate loop.
"""

import json
from collections import deque

from aps.llm.client import Completion, History, extract_phase
from aps.llm.errors import CompletionError, EmptyResponseError

_LAYOUT_TSX = """\
import type { ReactNode } from 'react';

export default function RootLayout({ children }: { children: ReactNode }) {
  return (
    <html lang="en">
      <body className="bg-slate-950 text-slate-100">{children}</body>
    </html>
  );
}
"""

_PAGE_TSX = """\
import { revenue } from '@/lib/mockData';
import RevenueChart from '@/components/Dashboard/RevenueChart';

export default function HomePage() {
  const total = revenue.reduce((sum, point) => sum + point.amount, 0);
  return (
    <main className="p-6">
      <h1 className="text-2xl font-semibold">Revenue Command Center</h1>
      <p className="text-slate-400">Total revenue: {total.toFixed(2)}</p>
      <RevenueChart data={revenue} />
    </main>
  );
}
"""

_BAD_CHART_IMPORT = "import { LineChart, XAxis, YAxis, Tooltip } from 'recharts';"
_GOOD_CHART_IMPORT = "import { Line, XAxis, YAxis, Tooltip } from 'recharts';"

_CHART_TSX = """\
'use client';

%s
import type { RevenuePoint } from '@/lib/mockData';

interface RevenueChartProps {
  data: RevenuePoint[];
}

export default function RevenueChart({ data }: RevenueChartProps) {
  return (
    <svg width={640} height={320} role="img">
      <XAxis dataKey="month" />
      <YAxis />
      <Tooltip />
      <Line type="monotone" dataKey="amount" data={data} />
    </svg>
  );
}
""" % _BAD_CHART_IMPORT

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
_AMOUNTS = [48210.5, 51873.25, 49920.0, 56310.75, 60102.4, 58877.9,
            63420.15, 65011.0, 61894.6, 67250.3, 70118.85, 74502.2]

_MOCK_DATA_TS = (
    "export interface RevenuePoint {\n"
    "  month: string;\n"
    "  amount: number;\n"
    "}\n"
    "\n"
    "export const revenue: RevenuePoint[] = [\n"
    + "".join(
        f"  {{ month: '{month}', amount: {amount} }},\n"
        for month, amount in zip(_MONTHS, _AMOUNTS)
    )
    + "];\n"
)

CANNED_PAYLOADS = {
    "planning": {
        "thought": "A revenue dashboard needs a monthly revenue series and a chart to show the trend.",
        "plan": {
            "features": [
                "Revenue overview: total revenue across the fiscal year",
                "Trend chart: monthly revenue rendered as a line chart",
            ],
            "dataModels": [
                {"name": "RevenuePoint", "fields": [
                    {"name": "month", "type": "string"},
                    {"name": "amount", "type": "number"},
                ]},
            ],
            "technicalRequirements": ["Next.js 14 App Router", "Recharts", "Tailwind CSS"],
            "mockDataSchema": {"revenue": [{"month": "Jan", "amount": 48210.5}]},
        },
    },
    "designing": {
        "thought": "An analytics command center reads best dark with cool accents.",
        "design_system": {
            "colorPalette": {
                "primary": "bg-indigo-500",
                "secondary": "bg-slate-700",
                "accent": "bg-cyan-400",
                "background": "bg-slate-950",
                "text": "text-slate-100",
            },
            "typography": {
                "heading": "font-['Inter']",
                "body": "font-['Inter']",
                "code": "font-['JetBrains_Mono']",
            },
            "spacing": {"cardPadding": "p-6", "sectionGap": "gap-8"},
            "theme": "dark",
        },
    },
    "architecting": {
        "thought": "One page, one chart component and the mock data module.",
        "file_system": [
            {"path": "src/app", "type": "directory"},
            {"path": "src/app/layout.tsx", "type": "file"},
            {"path": "src/app/page.tsx", "type": "file"},
            {"path": "src/components/Dashboard", "type": "directory"},
            {"path": "src/components/Dashboard/RevenueChart.tsx", "type": "file"},
            {"path": "src/lib/mockData.ts", "type": "file"},
        ],
    },
    "coding": {
        "thought": "Implementing every scaffolded file against the mock revenue series.",
        "files": [
            {"path": "src/app/layout.tsx", "content": _LAYOUT_TSX},
            {"path": "src/app/page.tsx", "content": _PAGE_TSX},
            {"path": "src/components/Dashboard/RevenueChart.tsx", "content": _CHART_TSX},
            {"path": "src/lib/mockData.ts", "content": _MOCK_DATA_TS},
        ],
    },
    "patching": {
        "thought": "recharts exports Line, not LineChart, from this import path.",
        "fixes": [
            {
                "file": "src/components/Dashboard/RevenueChart.tsx",
                "line": 3,
                "before": _BAD_CHART_IMPORT,
                "after": _GOOD_CHART_IMPORT,
            }
        ],
    },
}


def render_canned(phase: str) -> str:
    """Render the canned payload for a phase the way the live model answers."""
    payload = CANNED_PAYLOADS[phase]
    return f"[PHASE: {phase.upper()}]\n```json\n{json.dumps(payload, indent=2)}\n```"


class ScriptedCompletionClient:
    """Completion client that never touches the network.

    Args:
        responses: Optional queue of raw response strings or exceptions,
            consumed in order before falling back to the canned per-phase
            responses. Exceptions are raised as-is.
    """

    def __init__(self, responses=None):
        self._queue = deque(responses or [])
        self.calls: list[tuple[str, str, History]] = []

    def is_available(self) -> bool:
        return True

    def send(self, system_instruction: str, user_instruction: str, history: History) -> Completion:
        self.calls.append((system_instruction, user_instruction, list(history)))

        if self._queue:
            item = self._queue.popleft()
            if isinstance(item, BaseException):
                raise item
            return Completion(text=item, phase=extract_phase(item))

        phase = extract_phase(user_instruction)
        if phase not in CANNED_PAYLOADS:
            raise EmptyResponseError(f"No scripted response for phase {phase!r}")
        text = render_canned(phase)
        return Completion(text=text, phase=phase)


class FallbackCompletionClient:
    """Hybrid mode: use the live client, switch to the scripted one on failure.

    The switch is sticky for the lifetime of the client, so a run that lost
    the live service finishes against the scripted responses.
    """

    def __init__(self, primary, fallback=None, on_fallback=None):
        self._primary = primary
        self._fallback = fallback or ScriptedCompletionClient()
        self._on_fallback = on_fallback
        self.using_fallback = not primary.is_available()

    def is_available(self) -> bool:
        return True

    def send(self, system_instruction: str, user_instruction: str, history: History) -> Completion:
        if not self.using_fallback:
            try:
                return self._primary.send(system_instruction, user_instruction, history)
            except CompletionError as exc:
                self.using_fallback = True
                if self._on_fallback is not None:
                    self._on_fallback(exc)
        return self._fallback.send(system_instruction, user_instruction, history)
