"""
Snapshot operations for vCloud Director VMs and vApps.

The API keeps at most one snapshot per entity and does not name it, so every
operation works on "the" snapshot of an entity.
"""

import logging
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional
from urllib.parse import urljoin

from vcd_client import (
    AUTH_HEADER,
    EntityHandle,
    MalformedResponse,
    NotConfirmed,
    TransportError,
    VCloudSession,
    snippet,
)

logger = logging.getLogger(__name__)

VCLOUD_NS = 'http://www.vmware.com/vcloud/v1.5'
CREATE_PARAMS_TYPE = 'application/vnd.vmware.vcloud.createSnapshotParams+xml'
# The API ignores the name, but the schema requires one.
SNAPSHOT_NAME = 'Snapshot'

QUERY = 'snapshotSection'
CREATE = 'action/createSnapshot'
REMOVE = 'action/removeAllSnapshots'
REVERT = 'action/revertToCurrentSnapshot'

CONFIRM_MODES = ('required', 'auto-approved', 'always-decline')


@dataclass(frozen=True)
class CreateSnapshotOptions:
    memory: bool = False
    quiesce: bool = True


@dataclass(frozen=True)
class SnapshotRequest:
    """Everything needed to issue one HTTP request."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[bytes] = None


@dataclass
class SnapshotRecord:
    """The snapshot currently held by an entity."""

    entity_name: str
    size_bytes: int
    created: str
    raw_section: ET.Element
    powered_on: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_name': self.entity_name,
            'size_bytes': self.size_bytes,
            'created': self.created,
            'powered_on': self.powered_on,
        }

    def raw_xml(self) -> str:
        return ET.tostring(self.raw_section, encoding='unicode')


# Request building

def _xml_bool(value):
    return 'true' if value else 'false'


def build_request(session: VCloudSession, entity: EntityHandle, suffix: str,
                  options: Optional[CreateSnapshotOptions] = None) -> SnapshotRequest:
    """
    Describe the request for one snapshot action on an entity.

    :param session: Session supplying the token and API version
    :param entity: Target VM or vApp
    :param suffix: One of QUERY, CREATE, REMOVE, REVERT
    :param options: Create parameters, only used for CREATE
    :return: SnapshotRequest
    """
    # relative hrefs resolve against the session's API root
    href = urljoin(session.base_url + '/', entity.href)
    url = f"{href.rstrip('/')}/{suffix}"
    headers = {
        'Accept': f'application/*+xml;version={session.api_version}',
        AUTH_HEADER: session.token,
    }
    if suffix == QUERY:
        return SnapshotRequest('GET', url, headers)
    if suffix != CREATE:
        return SnapshotRequest('POST', url, headers)

    options = options or CreateSnapshotOptions()
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<CreateSnapshotParams name="{SNAPSHOT_NAME}" memory="{_xml_bool(options.memory)}" '
        f'quiesce="{_xml_bool(options.quiesce)}" xmlns="{VCLOUD_NS}"/>'
    ).encode('utf-8')
    headers['Content-Type'] = CREATE_PARAMS_TYPE
    headers['Content-Length'] = str(len(body))
    return SnapshotRequest('POST', url, headers, body)


# Response parsing

def _local_name(tag):
    return tag.rsplit('}', 1)[-1]


def _parse_xml(body):
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise MalformedResponse(f"Response is not well-formed XML: {e}", body_snippet=snippet(body))


def _field(element, name):
    value = (element.get(name) or '').strip()
    if value:
        return value
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or '').strip() or None
    return None


def parse_snapshot_section(body, entity_name: str) -> Optional[SnapshotRecord]:
    """
    Turn a SnapshotSection document into a record, or None when the entity
    has no snapshot.
    """
    root = _parse_xml(body)
    section = next((e for e in root.iter() if _local_name(e.tag) == 'SnapshotSection'), None)
    if section is None:
        raise MalformedResponse("Response has no SnapshotSection element", body_snippet=snippet(body))

    snapshot = next((e for e in section if _local_name(e.tag) == 'Snapshot'), None)
    if snapshot is None:
        return None

    size = _field(snapshot, 'size')
    created = _field(snapshot, 'created')
    if size is None or created is None:
        raise MalformedResponse("Snapshot element lacks size or created", body_snippet=snippet(body))
    try:
        size_bytes = int(size)
    except ValueError:
        raise MalformedResponse(f"Snapshot size '{size}' is not an integer", body_snippet=snippet(body))

    powered_on = _field(snapshot, 'poweredOn')
    return SnapshotRecord(
        entity_name=entity_name,
        size_bytes=size_bytes,
        created=created,
        raw_section=section,
        powered_on=None if powered_on is None else powered_on.lower() == 'true',
    )


def parse_task(body) -> Optional[Dict[str, Optional[str]]]:
    """Read the Task document returned by the action endpoints."""
    if not body or not body.strip():
        return None
    root = _parse_xml(body)
    return {
        'href': root.get('href'),
        'status': root.get('status'),
        'operation': root.get('operationName') or root.get('operation'),
    }


# Confirmation

class ConfirmationGate:
    """
    Decide whether a destructive action may go ahead.

    :param mode: 'required' prompts, 'auto-approved' always allows,
                 'always-decline' never allows
    :param prompt: Callable used to ask in 'required' mode, input() by default
    """
    def __init__(self, mode='required', prompt: Optional[Callable[[str], str]] = None):
        if mode not in CONFIRM_MODES:
            raise ValueError(f"Invalid confirm mode '{mode}': must be one of {', '.join(CONFIRM_MODES)}")
        self.mode = mode
        self.prompt = prompt if prompt is not None else input

    @classmethod
    def from_config(cls, config, prompt: Optional[Callable[[str], str]] = None):
        return cls(config.confirm, prompt)

    def check(self, action: str, entity: EntityHandle, force: bool = False):
        """Raise NotConfirmed unless the action on entity is allowed."""
        if force or self.mode == 'auto-approved':
            return
        if self.mode == 'always-decline':
            raise NotConfirmed(f"{action} on '{entity.name}' declined by configuration")
        try:
            answer = self.prompt(f"{action} snapshot of '{entity.name}'? This cannot be undone. (y/N): ")
        except (EOFError, KeyboardInterrupt):
            answer = ''
        if answer.strip().lower() not in ('y', 'yes'):
            raise NotConfirmed(f"{action} on '{entity.name}' cancelled")


# Operations

def _query_one(session, entity):
    request = build_request(session, entity, QUERY)
    try:
        body = session.send(request)
        record = parse_snapshot_section(body, entity.name)
    except (TransportError, MalformedResponse) as e:
        logger.error(f"Failed to get snapshot for '{entity.name}': {e}")
        raise
    if record is None:
        logger.info(f"'{entity.name}' has no snapshot")
    else:
        logger.info(f"Retrieved snapshot for '{entity.name}' created {record.created}")
    return record


def get_snapshot(session: VCloudSession, entity: Optional[EntityHandle] = None,
                 enumerate_vms: Optional[Callable[[], Iterable[EntityHandle]]] = None,
                 max_workers: int = 1):
    """
    Get the snapshot of an entity, or of every VM when entity is None.

    :param session: VCloudSession
    :param entity: Target VM or vApp; None means every VM from enumerate_vms
    :param enumerate_vms: Callable returning the VMs to query when entity is None
    :param max_workers: Query that many VMs in parallel when fanning out
                        (each worker thread gets its own HTTP session)
    :return: SnapshotRecord or None for one entity, list of records otherwise
    """
    if entity is not None:
        return _query_one(session, entity)
    if enumerate_vms is None:
        raise ValueError("An entity or a VM enumerator is required")

    vms = list(enumerate_vms())
    if max_workers > 1 and len(vms) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(lambda vm: _query_one(session, vm), vms))
    else:
        results = [_query_one(session, vm) for vm in vms]
    records = [r for r in results if r is not None]
    logger.info(f"Found {len(records)} snapshots across {len(vms)} VMs")
    return records


def create_snapshot(session: VCloudSession, entity: EntityHandle,
                    options: Optional[CreateSnapshotOptions] = None) -> Optional[SnapshotRecord]:
    """
    Snapshot an entity, replacing any snapshot it already has.

    The record returned comes from querying right after the request is
    accepted; the creation task is not awaited, so it may still be the old
    snapshot or None.
    """
    request = build_request(session, entity, CREATE, options)
    try:
        task = parse_task(session.send(request))
    except (TransportError, MalformedResponse) as e:
        logger.error(f"Failed to create snapshot for '{entity.name}': {e}")
        raise
    if task:
        logger.info(f"Snapshot for '{entity.name}' requested, task {task['href']} status {task['status']}")
    else:
        logger.info(f"Snapshot for '{entity.name}' requested")
    return _query_one(session, entity)


def _destructive(session, entity, suffix, action, gate, force):
    gate = gate or ConfirmationGate()
    try:
        gate.check(action, entity, force)
    except NotConfirmed as e:
        logger.info(str(e))
        return
    request = build_request(session, entity, suffix)
    try:
        task = parse_task(session.send(request))
    except (TransportError, MalformedResponse) as e:
        logger.error(f"Failed to {action.lower()} snapshot for '{entity.name}': {e}")
        raise
    logger.info(f"{action} snapshot for '{entity.name}' initiated"
                + (f", task {task['href']}" if task else ""))


def remove_snapshot(session: VCloudSession, entity: EntityHandle,
                    gate: Optional[ConfirmationGate] = None, force: bool = False):
    """Remove the snapshot of an entity after confirmation."""
    _destructive(session, entity, REMOVE, 'Remove', gate, force)


def revert_snapshot(session: VCloudSession, entity: EntityHandle,
                    gate: Optional[ConfirmationGate] = None, force: bool = False):
    """Revert an entity to its snapshot after confirmation."""
    _destructive(session, entity, REVERT, 'Revert', gate, force)
