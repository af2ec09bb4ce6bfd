"""
Unit tests for lambda utilities.
"""
import json
import unittest
import uuid
from decimal import Decimal

from models.detection_candidate import CandidateOverrides, Cadence
from models.money import Currency, Money
from utils.lambda_utils import (
    DecimalEncoder,
    create_response,
    mandatory_path_parameter,
    optional_int_query_parameter,
    optional_query_parameter,
    parse_and_validate_json,
)


class TestLambdaUtils(unittest.TestCase):
    def setUp(self):
        self.sample_event = {
            'pathParameters': {'id': '123', 'empty': ''},
            'queryStringParameters': {'status': 'pending', 'since': '1700000000000', 'bad': 'soon'},
        }

    def test_decimal_encoder(self):
        data = {
            'amount': Decimal('9.99'),
            'id': uuid.UUID('12345678-1234-5678-1234-567812345678'),
            'cadence': Cadence.MONTHLY,
            'price': Money(amount=Decimal('1.50'), currency=Currency.EUR),
        }
        self.assertEqual(json.loads(json.dumps(data, cls=DecimalEncoder)), {
            'amount': '9.99',
            'id': '12345678-1234-5678-1234-567812345678',
            'cadence': 'monthly',
            'price': {'amount': '1.50', 'currency': 'EUR'},
        })

        class UnsupportedType:
            pass
        with self.assertRaises(TypeError):
            json.dumps({'unsupported': UnsupportedType()}, cls=DecimalEncoder)

    def test_create_response(self):
        response = create_response(201, {'amount': Decimal('10.00')})
        self.assertEqual(response['statusCode'], 201)
        self.assertEqual(response['headers']['Content-Type'], 'application/json')
        self.assertEqual(json.loads(response['body']), {'amount': '10.00'})

    def test_path_parameters(self):
        self.assertEqual(mandatory_path_parameter(self.sample_event, 'id'), '123')
        with self.assertRaises(ValueError):
            mandatory_path_parameter(self.sample_event, 'empty')
        with self.assertRaises(ValueError):
            mandatory_path_parameter({}, 'id')

    def test_query_parameters(self):
        self.assertEqual(optional_query_parameter(self.sample_event, 'status'), 'pending')
        self.assertIsNone(optional_query_parameter({'queryStringParameters': None}, 'status'))
        self.assertEqual(optional_int_query_parameter(self.sample_event, 'since'), 1700000000000)
        self.assertIsNone(optional_int_query_parameter(self.sample_event, 'missing'))
        with self.assertRaises(ValueError):
            optional_int_query_parameter(self.sample_event, 'bad')

    def test_parse_and_validate_json(self):
        overrides, error = parse_and_validate_json(
            {'body': json.dumps({'amount': '17.99', 'nextOccurrence': 1735689600000})}, CandidateOverrides
        )
        self.assertIsNone(error)
        self.assertEqual(overrides.amount, Decimal('17.99'))
        self.assertEqual(overrides.next_occurrence, 1735689600000)

    def test_parse_and_validate_empty_body(self):
        overrides, error = parse_and_validate_json({'body': None}, CandidateOverrides)
        self.assertIsNone(error)
        self.assertIsNone(overrides.name)

    def test_parse_and_validate_invalid(self):
        overrides, error = parse_and_validate_json({'body': json.dumps({'amount': '-1'})}, CandidateOverrides)
        self.assertIsNone(overrides)
        self.assertEqual(error['statusCode'], 400)
        body = json.loads(error['body'])
        self.assertEqual(body['message'], 'Invalid request data')
        self.assertEqual(body['details'][0]['loc'], ['amount'])


if __name__ == '__main__':
    unittest.main()
