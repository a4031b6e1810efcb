"""Host tab API

- base.py: AbstractTabHost interface and TabState
- playwright_host.py: PlaywrightTabHost over a Playwright BrowserContext
"""
