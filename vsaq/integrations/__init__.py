"""vsaq.integrations — outbound HTTP clients.

Current clients:
  fill_client.FillClient — respondent fill API (/api/v1/fill/<link>)
"""
