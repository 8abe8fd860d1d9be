#!/usr/bin/env python3
"""
HTML pages for FOLIO

The interface is a handful of embedded templates. Every value placed in a
template is escaped here; only rendered markdown is inserted verbatim.
"""

from html import escape
from string import Template
from typing import List, Optional
from urllib.parse import quote

import markdown

from doc_names import Category, TEXT_EXTENSIONS, UPLOAD_EXTENSIONS, classify
from session_gate import AuthContext, Flash

MARKDOWN_EXTENSIONS = ['fenced_code', 'tables']


def render_markdown(text: str) -> str:
    """Convert markdown source to an HTML fragment"""
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)


# ============================================================================
# Layout
# ============================================================================

LAYOUT_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>$title - FOLIO</title>
    <style>
        :root {
            --bg-color: #f7f7f5;
            --panel-color: #ffffff;
            --text-color: #222222;
            --text-secondary: #666666;
            --accent-color: #2f6f4f;
            --error-color: #b3261e;
            --success-color: #2e7d32;
        }
        * { box-sizing: border-box; }
        body { margin: 0; font-family: system-ui, sans-serif; background: var(--bg-color); color: var(--text-color); }
        header { display: flex; justify-content: space-between; align-items: center; padding: 12px 24px; background: var(--accent-color); color: #fff; }
        header a, header button { color: #fff; }
        header form { display: inline; }
        .container { display: flex; gap: 24px; padding: 24px; }
        aside { width: 220px; flex-shrink: 0; }
        aside ul { list-style: none; padding: 0; }
        aside li { padding: 4px 0; word-break: break-all; }
        main { flex: 1; background: var(--panel-color); padding: 24px; border-radius: 6px; }
        .flash { padding: 10px 14px; margin-bottom: 16px; border-radius: 4px; }
        .flash.error { background: #fdecea; color: var(--error-color); }
        .flash.success { background: #edf7ed; color: var(--success-color); }
        .documents td { padding: 6px 10px; }
        .documents form { display: inline; }
        textarea { width: 100%; min-height: 400px; font-family: monospace; }
        .muted { color: var(--text-secondary); }
    </style>
</head>
<body>
    <header>
        <a href="/"><strong>FOLIO</strong></a>
        <nav>$nav</nav>
    </header>
    <div class="container">
        <aside>
            <h3>Documents</h3>
            <ul>$sidebar</ul>
        </aside>
        <main>
            $flash
            $body
        </main>
    </div>
</body>
</html>
""")


def _href(name: str) -> str:
    return "/" + quote(name, safe='')


def _nav(auth: AuthContext) -> str:
    if auth.signed_in:
        return (
            f'<span>Signed in as {escape(auth.username)}</span> '
            '<a href="/new">New document</a> '
            '<a href="/upload">Upload</a> '
            '<form action="/users/signout" method="post">'
            '<button type="submit">Sign out</button></form>'
        )
    return (
        '<a href="/users/signin">Sign in</a> '
        '<a href="/users/register">Register</a>'
    )


def _sidebar(documents: List[str]) -> str:
    items = []
    for name in documents:
        if classify(name).category is Category.UNKNOWN:
            items.append(f'<li class="muted">{escape(name)}</li>')
        else:
            items.append(f'<li><a href="{_href(name)}">{escape(name)}</a></li>')
    return "\n".join(items)


def _flash(flash: Optional[Flash]) -> str:
    if flash is None:
        return ""
    kind = "error" if flash.kind == "error" else "success"
    return f'<div class="flash {kind}">{escape(flash.message)}</div>'


def layout(
    title: str,
    body: str,
    documents: List[str],
    auth: AuthContext,
    flash: Optional[Flash] = None
) -> str:
    return LAYOUT_TEMPLATE.substitute(
        title=escape(title),
        nav=_nav(auth),
        sidebar=_sidebar(documents),
        flash=_flash(flash),
        body=body
    )


# ============================================================================
# Pages
# ============================================================================

def index_body(documents: List[str], auth: AuthContext) -> str:
    if not documents:
        return '<h1>Documents</h1><p class="muted">No documents yet.</p>'

    rows = []
    for name in documents:
        category = classify(name).category
        href = _href(name)
        if category is Category.UNKNOWN:
            cell = f'<span class="muted">{escape(name)}</span>'
        else:
            cell = f'<a href="{href}">{escape(name)}</a>'

        actions = ""
        if auth.signed_in:
            if category is Category.TEXT:
                actions += f'<a href="{href}/edit">Edit</a> '
            actions += (
                f'<a href="{href}/rename">Rename</a> '
                f'<form action="{href}/duplicate" method="post">'
                '<button type="submit">Duplicate</button></form> '
                f'<form action="{href}/delete" method="post">'
                '<button type="submit">Delete</button></form>'
            )
        rows.append(f"<tr><td>{cell}</td><td>{actions}</td></tr>")

    return (
        '<h1>Documents</h1>'
        f'<table class="documents">{"".join(rows)}</table>'
    )


def document_body(rendered_html: str) -> str:
    return f'<article>{rendered_html}</article>'


def new_document_body(value: str = "") -> str:
    return f"""<h1>New document</h1>
<form action="/create" method="post">
    <label for="file_name">Add a new document ({escape(", ".join(TEXT_EXTENSIONS))}):</label>
    <input type="text" id="file_name" name="file_name" value="{escape(value)}">
    <button type="submit">Create</button>
</form>"""


def edit_body(name: str, content: str) -> str:
    return f"""<h1>Edit {escape(name)}</h1>
<form action="{_href(name)}" method="post">
    <textarea name="content">{escape(content)}</textarea>
    <button type="submit">Save changes</button>
</form>"""


def rename_body(name: str, value: str = "") -> str:
    return f"""<h1>Rename {escape(name)}</h1>
<form action="{_href(name)}/rename" method="post">
    <label for="rename">New name:</label>
    <input type="text" id="rename" name="rename" value="{escape(value)}">
    <button type="submit">Rename</button>
</form>"""


def upload_body(max_size: int) -> str:
    return f"""<h1>Upload a file</h1>
<form action="/upload" method="post" enctype="multipart/form-data">
    <input type="file" name="fileupload">
    <button type="submit">Upload</button>
</form>
<p class="muted">Allowed types: {escape(", ".join(UPLOAD_EXTENSIONS))}.
Files must be smaller than {max_size:,} bytes.</p>"""


def signin_body(username: str = "") -> str:
    return f"""<h1>Sign in</h1>
<form action="/users/signin" method="post">
    <label for="username">Username</label>
    <input type="text" id="username" name="username" value="{escape(username)}">
    <label for="password">Password</label>
    <input type="password" id="password" name="password">
    <button type="submit">Sign in</button>
</form>
<p><a href="/users/register">Create an account</a></p>"""


def register_body(username: str = "") -> str:
    return f"""<h1>Register</h1>
<form action="/users/register" method="post">
    <label for="new_username">Username</label>
    <input type="text" id="new_username" name="new_username" value="{escape(username)}">
    <label for="new_password">Password</label>
    <input type="password" id="new_password" name="new_password">
    <button type="submit">Register</button>
</form>"""


SERVER_ERROR_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Error - FOLIO</title></head>
<body>
    <h1>Something went wrong</h1>
    <p>The request could not be completed. <a href="/">Back to documents</a></p>
</body>
</html>
"""
