"""
Turn a resolved ActivityPub object or NodeInfo document into something a human can read:
the full JSON first, then a short summary of the most interesting fields.
"""

from datetime import datetime
import html
import json
import re
from typing import Any, Callable

from rich.console import Console
from rich.text import Text

from fediresolve.reporting import trace
from fediresolve.utils import json_path, json_path_str, truncate


ACTOR_TYPES = [ 'Person', 'Application', 'Group', 'Organization', 'Service' ]
CONTENT_TYPES = [ 'Note', 'Article', 'Page', 'Question' ]
ACTIVITY_TYPES = [ 'Create', 'Update', 'Delete', 'Follow', 'Add', 'Remove', 'Like', 'Block', 'Announce', 'Undo' ]
COLLECTION_TYPES = [ 'Collection', 'OrderedCollection', 'CollectionPage', 'OrderedCollectionPage' ]
MEDIA_TYPES = [ 'Image', 'Audio', 'Video', 'Document' ]

MAX_CONTENT_LENGTH = 300
MAX_ITEM_LENGTH = 100
MAX_COLLECTION_ITEMS = 3

HTML_TAG_REGEX = re.compile(r'<[^>]*>')


def render(data: dict[str,Any], raw: bytes | None = None, color: bool = True) -> str:
    """
    Render data, which is either an ActivityPub object or a NodeInfo document. This never fails:
    if the summary cannot be produced, the raw JSON text is returned unchanged.
    """
    try:
        json_text = json.dumps(data, indent=2, ensure_ascii=False)
        summary = _to_string(summarize(data), color)

    except Exception as e: # pylint: disable=broad-exception-caught
        trace('Cannot render, falling back to raw JSON:', e)
        if raw is not None:
            return raw.decode('utf-8', errors='replace')
        return str(data)

    return f'{ json_text }\n\n{ summary }'


def is_nodeinfo(data: dict[str,Any]) -> bool:
    return json_path_str(data, 'software.name') is not None and 'version' in data


def summarize(data: dict[str,Any]) -> list[Text]:
    """
    Produce the summary lines appropriate for this kind of document.
    """
    if is_nodeinfo(data):
        return _summarize_nodeinfo(data)

    object_type = data.get('type')
    if isinstance(object_type, list):
        object_type = object_type[0] if object_type else None
    object_type = str(object_type) if object_type is not None else ''

    lines = [ _line('Type', object_type, 'cyan') ]
    _add(lines, data, 'id', 'ID', 'green')

    summarizer : Callable[[dict[str,Any], list[Text]], None] | None = None
    if object_type in ACTOR_TYPES:
        summarizer = _summarize_actor
    elif object_type in CONTENT_TYPES:
        summarizer = _summarize_content
    elif object_type in ACTIVITY_TYPES:
        summarizer = _summarize_activity
    elif object_type in COLLECTION_TYPES:
        summarizer = _summarize_collection
    elif object_type in MEDIA_TYPES:
        summarizer = _summarize_media
    elif object_type == 'Event':
        summarizer = _summarize_event
    elif object_type == 'Tombstone':
        summarizer = _summarize_tombstone

    if summarizer:
        summarizer(data, lines)
    return lines


def _summarize_actor(data: dict[str,Any], lines: list[Text]) -> None:
    _add(lines, data, 'name', 'Name', 'cyan')
    _add(lines, data, 'preferredUsername', 'Username', 'red')
    _add(lines, data, 'url', 'URL', 'green')
    _add(lines, data, 'summary', 'Summary', convert=strip_html)
    _add(lines, data, 'published', 'Published', 'yellow', convert=format_date)
    _add(lines, data, 'followers', 'Followers', 'green')
    _add(lines, data, 'following', 'Following', 'green')


def _summarize_content(data: dict[str,Any], lines: list[Text]) -> None:
    _add(lines, data, 'content', 'Content', convert=_shorten_html)
    _add_attachments(data.get('attachment'), lines)
    _add(lines, data, 'published', 'Published', convert=format_date)
    _add(lines, data, 'updated', 'Updated', convert=format_date)
    _add(lines, data, 'attributedTo', 'Author')
    _add(lines, data, 'to', 'To')
    _add(lines, data, 'cc', 'CC')
    _add(lines, data, 'inReplyTo', 'In Reply To')


def _summarize_activity(data: dict[str,Any], lines: list[Text]) -> None:
    _add(lines, data, 'actor', 'Actor')
    inner = data.get('object')
    if isinstance(inner, dict):
        lines.append(_line('Object Type', str(inner.get('type', '')), 'yellow'))
        _add(lines, inner, 'content', 'Content', convert=_shorten_html)
        _add_attachments(inner.get('attachment'), lines)
    else:
        _add(lines, data, 'object', 'Object')
    _add(lines, data, 'published', 'Published', convert=format_date)
    _add(lines, data, 'target', 'Target')


def _summarize_collection(data: dict[str,Any], lines: list[Text]) -> None:
    total = data.get('totalItems')
    if isinstance(total, int) and total > 0:
        lines.append(_line('Total Items', str(total)))

    items = data.get('items') or data.get('orderedItems')
    if isinstance(items, list) and items:
        lines.append(_line('First Items', None))
        for item in items[:MAX_COLLECTION_ITEMS]:
            lines.append(Text(f'  - { truncate(_as_string(item), MAX_ITEM_LENGTH) }'))
        if len(items) > MAX_COLLECTION_ITEMS:
            lines.append(Text(f'  ... and { len(items) - MAX_COLLECTION_ITEMS } more items'))


def _summarize_media(data: dict[str,Any], lines: list[Text]) -> None:
    _add(lines, data, 'name', 'Name')
    _add(lines, data, 'url', 'URL')
    _add(lines, data, 'duration', 'Duration')
    _add(lines, data, 'published', 'Published', convert=format_date)
    _add(lines, data, 'attributedTo', 'Author')


def _summarize_event(data: dict[str,Any], lines: list[Text]) -> None:
    _add(lines, data, 'name', 'Name')
    _add(lines, data, 'content', 'Description', convert=_shorten_html)
    _add(lines, data, 'startTime', 'Start Time', convert=format_date)
    _add(lines, data, 'endTime', 'End Time', convert=format_date)
    _add(lines, data, 'location', 'Location')


def _summarize_tombstone(data: dict[str,Any], lines: list[Text]) -> None:
    _add(lines, data, 'formerType', 'Former Type')
    _add(lines, data, 'deleted', 'Deleted', convert=format_date)


def _summarize_nodeinfo(data: dict[str,Any]) -> list[Text]:
    software = json_path_str(data, 'software.name') or ''
    software_version = json_path_str(data, 'software.version')
    if software_version:
        software += f' { software_version }'

    lines = [ _line('Software', software, 'cyan') ]
    _add(lines, data, 'version', 'NodeInfo Version')
    _add(lines, data, 'metadata.nodeName', 'Node Name', 'green')
    _add(lines, data, 'protocols', 'Protocols')
    open_registrations = data.get('openRegistrations')
    if isinstance(open_registrations, bool):
        lines.append(_line('Open Registrations', 'yes' if open_registrations else 'no', 'green' if open_registrations else 'red'))
    _add(lines, data, 'usage.users.total', 'Total Users', 'yellow')
    _add(lines, data, 'usage.users.activeMonth', 'Active Users (month)', 'yellow')
    _add(lines, data, 'usage.users.activeHalfyear', 'Active Users (half year)', 'yellow')
    _add(lines, data, 'usage.localPosts', 'Local Posts', 'yellow')
    return lines


def _add_attachments(attachments: Any, lines: list[Text]) -> None:
    if isinstance(attachments, dict):
        attachments = [ attachments ]
    if not isinstance(attachments, list) or not attachments:
        return

    lines.append(_line('Attachments', None))
    for i, attachment in enumerate(attachments):
        if not isinstance(attachment, dict):
            lines.append(Text(f'  { i+1 }. { _as_string(attachment) }'))
            continue

        entry = Text(f'  { i+1 }. ')
        entry.append(str(attachment.get('type', '')), style='green')
        media_type = attachment.get('mediaType')
        if media_type:
            entry.append(f' ({ media_type })')
        name = attachment.get('name')
        if isinstance(name, str) and name:
            entry.append(f': { truncate(name, MAX_ITEM_LENGTH) }')
        lines.append(entry)

        url = json_path(attachment, 'url')
        if url:
            lines.append(Text(f'     URL: { _as_string(url) }'))


def _add(lines: list[Text], data: dict[str,Any], path: str, label: str, style: str | None = None, convert: Callable[[str],str] | None = None) -> None:
    """
    Append a summary line for the value at path, if there is one.
    """
    value = json_path(data, path)
    if value is None or value == '' or value == []:
        return
    as_string = _as_string(value)
    if convert:
        as_string = convert(as_string)
    lines.append(_line(label, as_string, style))


def _line(label: str, value: str | None, style: str | None = None) -> Text:
    ret = Text()
    ret.append(label, style='bold')
    ret.append(':')
    if value is not None:
        ret.append(' ')
        ret.append(value, style=style or '')
    return ret


def _as_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return ', '.join(value)
    if isinstance(value, dict) and isinstance(value.get('id'), str):
        return value['id']
    if isinstance(value, dict) and isinstance(value.get('href'), str):
        return value['href']
    return json.dumps(value, ensure_ascii=False)


def _to_string(lines: list[Text], color: bool) -> str:
    console = Console(
            color_system='standard' if color else None,
            force_terminal=color,
            highlight=False,
            soft_wrap=True)
    with console.capture() as capture:
        for line in lines:
            console.print(line)
    return capture.get().rstrip('\n')


def strip_html(value: str) -> str:
    """
    Reduce HTML content to its text, with whitespace normalized.
    """
    return ' '.join(html.unescape(HTML_TAG_REGEX.sub(' ', value)).split())


def _shorten_html(value: str) -> str:
    return truncate(strip_html(value), MAX_CONTENT_LENGTH)


def format_date(value: str) -> str:
    """
    Format an ISO 8601 timestamp like 'Jan 02, 2006 15:04:05'. Leaves anything else alone.
    """
    try:
        return datetime.fromisoformat(value).strftime('%b %d, %Y %H:%M:%S')
    except ValueError:
        return value
