#!/usr/bin/env python3
"""
Create the progress table in LocalStack for local development
"""
import os

import boto3
from botocore.exceptions import ClientError


def create_tables():
    """Create the single DynamoDB table used by the progress service"""

    # Connect to LocalStack
    dynamodb = boto3.client(
        'dynamodb',
        endpoint_url=os.getenv('DYNAMODB_ENDPOINT', 'http://localhost:4566'),
        region_name=os.getenv('AWS_REGION', 'eu-north-1'),
        aws_access_key_id='test',
        aws_secret_access_key='test'
    )

    tables = [
        # Profiles, topic scores, badges and weekly goals (PK/SK single table)
        {
            'TableName': os.getenv('DYNAMODB_PROGRESS_TABLE', 'sfi-dev-user-progress'),
            'KeySchema': [
                {'AttributeName': 'PK', 'KeyType': 'HASH'},
                {'AttributeName': 'SK', 'KeyType': 'RANGE'}
            ],
            'AttributeDefinitions': [
                {'AttributeName': 'PK', 'AttributeType': 'S'},
                {'AttributeName': 'SK', 'AttributeType': 'S'}
            ],
            'BillingMode': 'PAY_PER_REQUEST'
        },
    ]

    for table_config in tables:
        table_name = table_config['TableName']
        try:
            # Check if table exists
            dynamodb.describe_table(TableName=table_name)
            print(f"✓ Table {table_name} already exists")
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceNotFoundException':
                dynamodb.create_table(**table_config)
                print(f"✓ Created table {table_name}")
            else:
                raise

    print("\n✅ All tables created successfully!")


if __name__ == "__main__":
    create_tables()
