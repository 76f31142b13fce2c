# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Converters rendering validation reports as text or JSON.
"""
import json
from collections import Counter
from typing import List

from jinja2 import Template

from ..MODELS.findings import Severity, ValidationReport

TEXT_TEMPLATE = """
{%- for report in reports %}
{{ report.path }}
{%- if report.error %}
  {{ report.error.line or '-' }}: fatal {{ report.error.kind }} error: {{ report.error.message }}
{%- elif not report.findings %}
  ok
{%- else %}
{%- for f in report.findings %}
  {{ f.line or '-' }}: {{ f.severity.value }} {{ f.rule }} [{{ f.stage }}] {{ f.message }}
{%- endfor %}
{%- endif %}
{% endfor %}
{{ files }} recipe(s), {{ total }} finding(s) ({{ errors }} error, {{ warnings }} warning, {{ infos }} info), {{ fatal }} fatal, {{ blocking }} blocking (fail-on: {{ fail_on }})
"""


class ReportConverter:
    """
    Renders a list of validation reports.
    """

    def __init__(self, reports: List[ValidationReport], fail_on: Severity = Severity.ERROR):
        """
        Initializes the converter.

        :param reports: Reports to render, in output order.
        :param fail_on: Severity at which a finding counts as blocking.
        """
        self.reports = reports
        self.fail_on = fail_on
        self.template = Template(TEXT_TEMPLATE)

    def to_text(self) -> str:
        """
        Renders a human readable listing, one block per recipe.
        """
        counts = Counter(f.severity for r in self.reports for f in r.findings)
        return self.template.render(
            reports=self.reports,
            files=len(self.reports),
            total=sum(counts.values()),
            errors=counts[Severity.ERROR],
            warnings=counts[Severity.WARNING],
            infos=counts[Severity.INFO],
            fatal=sum(1 for r in self.reports if r.failed),
            blocking=sum(1 for r in self.reports if r.is_blocking(self.fail_on)),
            fail_on=self.fail_on.value,
        ).strip() + "\n"

    def to_json(self) -> str:
        """
        Renders the reports as a JSON document.
        """
        data = {
            "fail_on": self.fail_on.value,
            "reports": [
                dict(r.model_dump(mode="json"), blocking=r.is_blocking(self.fail_on))
                for r in self.reports
            ],
        }
        return json.dumps(data, indent=2)
