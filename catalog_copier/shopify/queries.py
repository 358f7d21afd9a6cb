"""
GraphQL query strings for Shopify Admin API.
"""


# Full product, used to read a source product through an admin URL
PRODUCT_DETAILS_QUERY = '''
query productDetails($id: ID!) {
  product(id: $id) {
    id
    handle
    title
    description
    descriptionHtml
    vendor
    productType
    tags
    images(first: 250) {
      nodes {
        id
        url
        altText
      }
    }
    options {
      name
      values
    }
    variants(first: 250) {
      nodes {
        id
        title
        price
        compareAtPrice
        sku
        barcode
        inventoryQuantity
        taxable
        image {
          id
        }
        selectedOptions {
          name
          value
        }
        inventoryItem {
          requiresShipping
          measurement {
            weight {
              value
              unit
            }
          }
        }
      }
    }
  }
}
'''

# Authoritative variant ids and prices after creation
PRODUCT_VARIANTS_QUERY = '''
query productVariants($id: ID!) {
  product(id: $id) {
    id
    handle
    title
    variants(first: 250) {
      nodes {
        id
        price
        selectedOptions {
          name
          value
        }
      }
    }
  }
}
'''

PUBLICATIONS_QUERY = '''
query {
  publications(first: 25) {
    nodes {
      id
      name
    }
  }
}
'''
