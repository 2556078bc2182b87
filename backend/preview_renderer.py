"""
Preview Renderer

Builds the HTML documents shown in the live preview frame, the
"open in new tab" view, the exported static files and the public
preview pages of published projects.
"""

import html
from typing import List, Optional

# Reset styles applied before user CSS in the editor preview
RESET_CSS = """
      * {
        margin: 0;
        padding: 0;
        box-sizing: border-box;
      }

      body {
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
        line-height: 1.6;
        color: #333;
      }
"""

# Relays console output and runtime errors from the sandboxed frame to the editor.
# Messages have the shape {type: 'console', level, message, timestamp}.
CONSOLE_BRIDGE_JS = """
      if (typeof window.originalConsole === 'undefined') {
        window.originalConsole = {
          log: console.log,
          error: console.error,
          warn: console.warn,
          info: console.info
        };
      }

      function sendToParent(type, message) {
        try {
          window.parent.postMessage({
            type: 'console',
            level: type,
            message: String(message),
            timestamp: Date.now()
          }, '*');
        } catch (e) {
          // parent frame gone
        }
      }

      ['log', 'error', 'warn', 'info'].forEach(function (level) {
        console[level] = function () {
          var args = Array.prototype.slice.call(arguments);
          window.originalConsole[level].apply(console, args);
          sendToParent(level, args.join(' '));
        };
      });

      window.addEventListener('error', function (e) {
        sendToParent('error', 'Error: ' + e.message + ' at line ' + e.lineno);
      });

      window.addEventListener('unhandledrejection', function (e) {
        sendToParent('error', 'Unhandled Promise Rejection: ' + e.reason);
      });

      document.addEventListener('click', function (e) {
        var target = e.target.closest('a');
        if (target && target.href && !target.getAttribute('href').startsWith('#')) {
          e.preventDefault();
          console.log('External link clicked:', target.href);
        }
      });
"""

PREVIEW_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Preview</title>
    <style>
{reset}
      /* User CSS */
{css}
    </style>
</head>
<body>
{html}
    <script>
{bridge}
      try {{
{js}
      }} catch (error) {{
        console.error('JavaScript execution error:', error.message);
      }}
    </script>
</body>
</html>"""

EXPORT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
{css}
    </style>
</head>
<body>
{html}
    <script>
{js}
    </script>
</body>
</html>"""

PUBLIC_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <meta name="description" content="{description}">
{keywords}    <style>
      .ssm-preview-header {{ display: flex; justify-content: space-between; align-items: center;
        padding: 8px 16px; border-bottom: 1px solid #e5e7eb; background: #fff;
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; }}
      .ssm-preview-badge {{ padding: 2px 8px; background: #dcfce7; color: #166534;
        font-size: 12px; border-radius: 9999px; }}
      .ssm-preview-nav {{ position: fixed; bottom: 16px; right: 16px; background: #fff;
        border: 1px solid #e5e7eb; border-radius: 8px; padding: 8px;
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; }}
      .ssm-preview-nav a {{ display: block; padding: 4px 12px; font-size: 14px; }}
      .ssm-preview-nav a.active {{ background: #dbeafe; color: #1e40af; }}
    </style>
    <style>
{css}
    </style>
</head>
<body>
    <div class="ssm-preview-header">
        <div>{breadcrumb} <span class="ssm-preview-badge">Live Preview</span></div>
        <div>{project_description}</div>
    </div>
    <div class="ssm-preview-content">
{html}
    </div>
{navigation}    <script>
{js}
    </script>
</body>
</html>"""


def render_preview_document(html_content: str, css_content: str, js_content: str) -> str:
    """
    Build the document loaded into the sandboxed live preview frame.

    User JS runs inside try/catch after the console bridge, so runtime
    errors surface in the editor console instead of breaking the frame.
    """
    return PREVIEW_TEMPLATE.format(
        reset=RESET_CSS,
        css=css_content or "",
        html=html_content or "",
        bridge=CONSOLE_BRIDGE_JS,
        js=js_content or "",
    )


def render_standalone_document(html_content: str, css_content: str, js_content: str) -> str:
    """Build the preview document without the console bridge (new tab view)."""
    return PREVIEW_TEMPLATE.format(
        reset=RESET_CSS,
        css=css_content or "",
        html=html_content or "",
        bridge="",
        js=js_content or "",
    )


def render_export_document(page: dict, project_name: str) -> str:
    """Build the static HTML file written for a page in an export bundle."""
    return EXPORT_TEMPLATE.format(
        title=html.escape(page.get("title") or project_name),
        css=page.get("cssContent") or "",
        html=page.get("htmlContent") or "",
        js=page.get("jsContent") or "",
    )


def public_page_href(project_slug: str, page: dict) -> str:
    """Public preview link of a page (home page links to the project root)."""
    if page.get("isHomePage"):
        return f"/preview/{project_slug}"
    return f"/preview/{project_slug}/{page['slug']}"


def render_public_page(
    project: dict,
    page: Optional[dict],
    pages: List[dict],
    show_page_in_title: bool = False
) -> str:
    """
    Build a public preview page of a published project.

    Args:
        project: Published project record
        page: Page to show, or None when the project has no pages
        pages: All pages of the project (navigation order)
        show_page_in_title: Title as "<page> - <project>" and add a breadcrumb
    """
    project_name = html.escape(project.get("name", ""))
    project_description = html.escape(project.get("description") or "")

    if page is None:
        return PUBLIC_PAGE_TEMPLATE.format(
            title=project_name,
            description=project_description,
            keywords="",
            css="",
            breadcrumb=f"<strong>{project_name}</strong>",
            project_description=project_description,
            html="        <p>No pages found in this project.</p>",
            navigation="",
            js="",
        )

    page_title = html.escape(page.get("title") or "")
    if page.get("metaTitle"):
        title = html.escape(page["metaTitle"])
    elif show_page_in_title:
        title = f"{page_title} - {project_name}"
    else:
        title = project_name

    description = html.escape(
        page.get("metaDesc") or project.get("description") or f"Preview of {project.get('name', '')}"
    )
    keywords = ""
    if page.get("keywords"):
        keywords = f'    <meta name="keywords" content="{html.escape(page["keywords"])}">\n'

    if show_page_in_title:
        breadcrumb = (
            f'<a href="/preview/{project["slug"]}"><strong>{project_name}</strong></a>'
            f' / <span>{page_title}</span>'
        )
    else:
        breadcrumb = f"<strong>{project_name}</strong>"

    navigation = ""
    if len(pages) > 1:
        links = []
        for other in pages:
            css_class = ' class="active"' if other["id"] == page["id"] else ""
            links.append(
                f'        <a href="{public_page_href(project["slug"], other)}"{css_class}>'
                f'{html.escape(other.get("title") or other["slug"])}</a>'
            )
        navigation = (
            '    <nav class="ssm-preview-nav">\n'
            '        <div>Pages:</div>\n'
            + "\n".join(links)
            + "\n    </nav>\n"
        )

    return PUBLIC_PAGE_TEMPLATE.format(
        title=title,
        description=description,
        keywords=keywords,
        css=page.get("cssContent") or "",
        breadcrumb=breadcrumb,
        project_description=project_description,
        html=page.get("htmlContent") or "",
        navigation=navigation,
        js=page.get("jsContent") or "",
    )
