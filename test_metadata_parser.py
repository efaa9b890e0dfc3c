#!/usr/bin/env python3
"""Unit tests for CSDL v2/v4 metadata parsing."""

import unittest
from contextlib import redirect_stderr
from io import StringIO
from unittest.mock import MagicMock, patch

import requests

from odata_tools_lib.metadata_parser import MetadataParser
from sample_models import make_metadata_response

V4_METADATA = b"""<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="Demo" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Customer">
        <Key><PropertyRef Name="Id"/></Key>
        <Property Name="Id" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String" Nullable="false">
          <Annotation Term="Core.Description" String="Display name"/>
        </Property>
        <Property Name="Photo" Type="Edm.Stream"/>
        <NavigationProperty Name="Orders" Type="Collection(Demo.Order)"/>
      </EntityType>
      <EntityType Name="Order">
        <Key><PropertyRef Name="OrderId"/></Key>
        <Property Name="OrderId" Type="Edm.Int64" Nullable="false"/>
        <Property Name="Total" Type="Edm.Decimal"/>
        <NavigationProperty Name="Customer" Type="Demo.Customer" Nullable="false"/>
      </EntityType>
      <EntityType Name="PriorityOrder" BaseType="Demo.Order">
        <Property Name="Priority" Type="Edm.Byte"/>
      </EntityType>
      <EntityContainer Name="Container">
        <EntitySet Name="Customers" EntityType="Demo.Customer"/>
        <EntitySet Name="Orders" EntityType="Demo.Order"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>
"""

V2_METADATA = b"""<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0" xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx"
    xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"
    xmlns:sap="http://www.sap.com/Protocols/SAPData">
  <edmx:DataServices m:DataServiceVersion="2.0">
    <Schema Namespace="ZSALES_SRV" xmlns="http://schemas.microsoft.com/ado/2008/09/edm">
      <EntityType Name="SalesOrder" sap:label="Sales Order">
        <Key><PropertyRef Name="OrderID"/></Key>
        <Property Name="OrderID" Type="Edm.String" Nullable="false" sap:label="Order"/>
        <Property Name="Amount" Type="Edm.Decimal"/>
        <NavigationProperty Name="Items" Relationship="ZSALES_SRV.OrderItems" FromRole="Order" ToRole="Item"/>
      </EntityType>
      <EntityType Name="SalesOrderItem">
        <Key><PropertyRef Name="OrderID"/><PropertyRef Name="ItemNo"/></Key>
        <Property Name="OrderID" Type="Edm.String" Nullable="false"/>
        <Property Name="ItemNo" Type="Edm.String" Nullable="false"/>
        <NavigationProperty Name="Order" Relationship="ZSALES_SRV.OrderItems" FromRole="Item" ToRole="Order"/>
      </EntityType>
      <Association Name="OrderItems">
        <End Type="ZSALES_SRV.SalesOrder" Multiplicity="1" Role="Order"/>
        <End Type="ZSALES_SRV.SalesOrderItem" Multiplicity="*" Role="Item"/>
      </Association>
      <EntityContainer Name="ZSALES_SRV_Entities" m:IsDefaultEntityContainer="true">
        <EntitySet Name="SalesOrderSet" EntityType="ZSALES_SRV.SalesOrder" sap:label="Orders"/>
        <EntitySet Name="SalesOrderItemSet" EntityType="ZSALES_SRV.SalesOrderItem"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>
"""


def make_parser(session=None):
    return MetadataParser("https://example.com/odata/", session=session or MagicMock())


class TestV4Metadata(unittest.TestCase):

    def setUp(self):
        self.metadata = make_parser().parse_document(V4_METADATA)

    def test_entity_types_and_keys(self):
        customer = self.metadata.get_entity_type("Demo.Customer")
        self.assertEqual(customer.key_properties, ["Id"])
        self.assertEqual([p.name for p in customer.properties], ["Id", "Name", "Photo"])
        self.assertFalse(customer.get_property("Name").nullable)
        self.assertTrue(customer.get_property("Photo").is_binary())
        self.assertEqual(customer.get_property("Name").description, "Display name")

    def test_navigation_cardinality(self):
        orders = self.metadata.get_entity_type("Customer").navigation_properties[0]
        self.assertTrue(orders.is_collection)
        self.assertEqual(orders.target_type, "Demo.Order")
        customer = self.metadata.get_entity_type("Order").navigation_properties[0]
        self.assertFalse(customer.is_collection)
        self.assertFalse(customer.nullable)

    def test_base_type_members_are_inherited(self):
        priority = self.metadata.get_entity_type("Demo.PriorityOrder")
        self.assertEqual(priority.key_properties, ["OrderId"])
        self.assertEqual([p.name for p in priority.properties], ["OrderId", "Total", "Priority"])
        self.assertEqual([n.name for n in priority.navigation_properties], ["Customer"])

    def test_entity_sets(self):
        self.assertEqual(list(self.metadata.entity_sets), ["Customers", "Orders"])
        self.assertEqual(self.metadata.entity_sets["Orders"].entity_type, "Demo.Order")
        self.assertEqual(self.metadata.service_url, "https://example.com/odata")
        self.assertEqual(self.metadata.namespace, "Demo")


class TestV2Metadata(unittest.TestCase):

    def setUp(self):
        self.metadata = make_parser().parse_document(V2_METADATA)

    def test_navigation_resolved_through_associations(self):
        order = self.metadata.get_entity_type("SalesOrder")
        items = order.navigation_properties[0]
        self.assertEqual(items.type, "Collection(ZSALES_SRV.SalesOrderItem)")
        back = self.metadata.get_entity_type("SalesOrderItem").navigation_properties[0]
        self.assertEqual(back.type, "ZSALES_SRV.SalesOrder")

    def test_sap_labels_become_descriptions(self):
        order = self.metadata.get_entity_type("ZSALES_SRV.SalesOrder")
        self.assertEqual(order.description, "Sales Order")
        self.assertEqual(order.get_property("OrderID").description, "Order")
        self.assertEqual(self.metadata.entity_sets["SalesOrderSet"].description, "Orders")

    def test_composite_key(self):
        item = self.metadata.get_entity_type("SalesOrderItem")
        self.assertEqual(item.key_properties, ["OrderID", "ItemNo"])
        self.assertEqual(self.metadata.find_entity_set(item).name, "SalesOrderItemSet")


class TestFailures(unittest.TestCase):

    def test_invalid_xml(self):
        with redirect_stderr(StringIO()), self.assertRaises(ValueError):
            make_parser().parse_document(b"<not-xml")

    def test_document_without_schema(self):
        with self.assertRaises(ValueError):
            make_parser().parse_document(b"<Edmx><DataServices/></Edmx>")

    def test_external_entities_are_not_expanded(self):
        document = (b'<?xml version="1.0"?><!DOCTYPE x [<!ENTITY e SYSTEM "file:///etc/passwd">]>'
                    b'<Edmx><DataServices><Schema Namespace="N"><EntityType Name="T">'
                    b'<Property Name="P" Type="Edm.String"/></EntityType></Schema></DataServices></Edmx>')
        metadata = make_parser().parse_document(document)
        self.assertIn("N.T", metadata.entity_types)

    def test_parse_fetches_metadata_endpoint(self):
        session = MagicMock()
        session.get.return_value = make_metadata_response(200, text=V4_METADATA.decode("utf-8"))
        metadata = make_parser(session).parse()
        session.get.assert_called_once_with("https://example.com/odata/$metadata")
        self.assertEqual(len(metadata.entity_types), 3)

    def test_fetch_errors_propagate(self):
        session = MagicMock()
        session.get.return_value = make_metadata_response(401)
        with redirect_stderr(StringIO()) as err, self.assertRaises(requests.exceptions.HTTPError):
            make_parser(session).parse()
        self.assertIn("Authentication", err.getvalue())

    def test_bearer_token_is_sent_with_metadata_request(self):
        response = make_metadata_response(200, text=V4_METADATA.decode("utf-8"))
        with patch("requests.adapters.HTTPAdapter.send", return_value=response) as send:
            MetadataParser("https://example.com/odata", auth_token="abc").parse()
        sent = send.call_args.args[0]
        self.assertEqual(sent.url, "https://example.com/odata/$metadata")
        self.assertEqual(sent.headers["Authorization"], "Bearer abc")
        self.assertEqual(sent.headers["Accept"], "application/xml")

    def test_no_authorization_header_without_token(self):
        parser = MetadataParser("https://example.com/odata", session=requests.Session())
        self.assertNotIn("Authorization", parser.session.headers)


if __name__ == "__main__":
    unittest.main()
