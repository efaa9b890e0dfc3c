"""
OData metadata parser producing the metadata model the catalog is built from.

Handles CSDL v2 (navigation resolved through associations) and v4 (navigation
types declared inline). Elements are matched by local name so either namespace
set works.
"""

import sys
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import requests
from lxml import etree

from .constants import NAMESPACES, USER_AGENT
from .models import EntityProperty, EntitySet, EntityType, NavigationProperty, ODataMetadata


def _children(element, local_name: str) -> List:
    return element.xpath(f"./*[local-name()='{local_name}']")


class MetadataParser:
    """Fetches and parses $metadata from an OData service."""

    def __init__(self, service_url: str, auth: Optional[Tuple[str, str]] = None, verbose: bool = False,
                 session: Optional[requests.Session] = None, auth_token: Optional[str] = None):
        self.service_url = service_url.rstrip('/')
        self.metadata_url = f"{self.service_url}/$metadata"
        self.verbose = verbose
        self.session = session or requests.Session()
        if auth:
            self.session.auth = auth
        self.session.headers.update({
            'Accept': 'application/xml',
            'User-Agent': USER_AGENT,
        })
        if auth_token:
            self.session.headers['Authorization'] = f"Bearer {auth_token}"

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Parser VERBOSE] {message}", file=sys.stderr)

    def _get_description(self, element) -> Optional[str]:
        """Helper to extract description from SAP labels or standard annotations."""
        label = element.get(f"{{{NAMESPACES['sap']}}}label")
        if label:
            return label
        desc = element.xpath(".//*[local-name()='Documentation']/*[local-name()='Summary']/text()")
        if desc:
            return str(desc[0])
        desc = element.xpath("./*[local-name()='Annotation' and @Term='Core.Description']/@String")
        if desc:
            return str(desc[0])
        return None

    def parse(self) -> ODataMetadata:
        """Fetch the metadata document and parse it."""
        try:
            self._log_verbose(f"Fetching metadata from {self.metadata_url}...")
            response = self.session.get(self.metadata_url)
            response.raise_for_status()
        except requests.exceptions.RequestException as req_err:
            print(f"FATAL ERROR: Could not fetch metadata: {req_err}", file=sys.stderr)
            if req_err.response is not None and req_err.response.status_code in [401, 403]:
                print("ERROR: Authentication might be required or incorrect. Check credentials.", file=sys.stderr)
            raise
        self._log_verbose("Metadata fetched successfully.")
        return self.parse_document(response.content)

    def parse_document(self, content: bytes) -> ODataMetadata:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        try:
            root = etree.fromstring(content, parser)
        except etree.XMLSyntaxError as parse_err:
            print(f"ERROR: Error parsing XML metadata: {parse_err}", file=sys.stderr)
            raise ValueError("Metadata response is not valid XML") from parse_err

        schemas = root.xpath("//*[local-name()='Schema']")
        if not schemas:
            raise ValueError("Metadata document contains no Schema element")

        associations = self._parse_associations(schemas)
        entity_types: Dict[str, EntityType] = {}
        for schema in schemas:
            namespace = schema.get('Namespace')
            for et_elem in _children(schema, 'EntityType'):
                entity_type = self._parse_entity_type(et_elem, namespace, associations)
                if entity_type is not None:
                    entity_types[entity_type.full_name] = entity_type
        self._apply_base_types(schemas, entity_types)

        entity_sets: Dict[str, EntitySet] = {}
        for container in root.xpath("//*[local-name()='EntityContainer']"):
            for es_elem in _children(container, 'EntitySet'):
                name = es_elem.get('Name')
                entity_type_fqn = es_elem.get('EntityType')
                if not name or not entity_type_fqn:
                    continue
                entity_sets[name] = EntitySet(
                    name=name,
                    entity_type=entity_type_fqn,
                    description=self._get_description(es_elem),
                )

        self._log_verbose(f"Parsing complete. Found {len(entity_types)} types, {len(entity_sets)} sets.")
        return ODataMetadata(
            entity_types=entity_types,
            entity_sets=entity_sets,
            service_url=self.service_url,
            namespace=schemas[0].get('Namespace'),
        )

    def _parse_associations(self, schemas) -> Dict[str, Dict[str, Tuple[str, str]]]:
        """v2 only: association name -> role -> (entity type, multiplicity)."""
        associations = {}
        for schema in schemas:
            for assoc in _children(schema, 'Association'):
                ends = {}
                for end in _children(assoc, 'End'):
                    ends[end.get('Role')] = (end.get('Type'), end.get('Multiplicity', '1'))
                associations[assoc.get('Name')] = ends
        return associations

    def _parse_entity_type(self, et_elem, namespace: Optional[str],
                           associations: Dict[str, Dict[str, Tuple[str, str]]]) -> Optional[EntityType]:
        name = et_elem.get('Name')
        if not name:
            return None

        key_props_names = [str(n) for n in et_elem.xpath("./*[local-name()='Key']/*[local-name()='PropertyRef']/@Name")]

        properties = []
        for prop_elem in _children(et_elem, 'Property'):
            prop_name = prop_elem.get('Name')
            prop_type = prop_elem.get('Type')
            if not prop_name or not prop_type:
                continue
            properties.append(EntityProperty(
                name=prop_name,
                type=prop_type,
                nullable=prop_elem.get('Nullable', 'true').lower() == 'true',
                is_key=prop_name in key_props_names,
                description=self._get_description(prop_elem),
            ))

        navigation_properties = []
        for nav_elem in _children(et_elem, 'NavigationProperty'):
            nav_type = nav_elem.get('Type') or self._association_target(nav_elem, associations)
            if not nav_elem.get('Name') or not nav_type:
                self._log_verbose(f"Warning: Could not resolve navigation property "
                                  f"{name}.{nav_elem.get('Name')}; skipping.")
                continue
            navigation_properties.append(NavigationProperty(
                name=nav_elem.get('Name'),
                type=nav_type,
                nullable=nav_elem.get('Nullable', 'true').lower() == 'true',
                description=self._get_description(nav_elem),
            ))

        return EntityType(
            name=name,
            namespace=namespace,
            properties=properties,
            key_properties=list(key_props_names),
            navigation_properties=navigation_properties,
            description=self._get_description(et_elem),
        )

    @staticmethod
    def _association_target(nav_elem, associations) -> Optional[str]:
        relationship = nav_elem.get('Relationship')
        if not relationship:
            return None
        ends = associations.get(relationship.split('.')[-1], {})
        target = ends.get(nav_elem.get('ToRole'))
        if target is None:
            return None
        target_type, multiplicity = target
        return f"Collection({target_type})" if multiplicity == '*' else target_type

    def _apply_base_types(self, schemas, entity_types: Dict[str, EntityType]):
        """Copy inherited keys, properties and navigation from BaseType declarations."""
        base_of = {}
        for schema in schemas:
            namespace = schema.get('Namespace')
            for et_elem in _children(schema, 'EntityType'):
                if et_elem.get('BaseType') and et_elem.get('Name'):
                    full_name = f"{namespace}.{et_elem.get('Name')}" if namespace else et_elem.get('Name')
                    base_of[full_name] = et_elem.get('BaseType')

        def resolve(full_name: str, seen: frozenset) -> Optional[EntityType]:
            entity_type = entity_types.get(full_name)
            base_name = base_of.get(full_name)
            if entity_type is None or base_name is None or base_name in seen:
                return entity_type
            base = resolve(base_name, seen | {full_name})
            if base is None:
                return entity_type
            own = {prop.name for prop in entity_type.properties}
            merged = entity_type.model_copy(update={
                "properties": [p for p in base.properties if p.name not in own] + entity_type.properties,
                "key_properties": entity_type.key_properties or list(base.key_properties),
                "navigation_properties": base.navigation_properties + entity_type.navigation_properties,
            })
            entity_types[full_name] = merged
            base_of.pop(full_name)
            return merged

        for full_name in list(base_of):
            resolve(full_name, frozenset())
